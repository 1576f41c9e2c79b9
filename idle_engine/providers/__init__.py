"""
Providers Package for the IdLE engine.

This package defines the provider contracts the engine consumes
(capability advertisement, identity and entitlement roles), the auth
session broker contract, and an in-memory mock provider.
"""

from .auth import AuthSessionBroker, SessionMapBroker
from .base_provider import (
    BaseProvider,
    EntitlementProvider,
    IdentityProvider,
    MockIdentityProvider,
    ProviderResult,
)

__all__ = [
    "AuthSessionBroker",
    "SessionMapBroker",
    "BaseProvider",
    "IdentityProvider",
    "EntitlementProvider",
    "MockIdentityProvider",
    "ProviderResult",
]
