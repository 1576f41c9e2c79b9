"""
Base Provider Classes for the IdLE engine.

Providers are the pluggable identity/resource backends steps operate on.
The engine only consumes them through capability advertisement
(``get_capabilities``) and the role interfaces defined here; concrete
directory or mailbox backends live outside the engine.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..errors import PermanentProviderError

logger = logging.getLogger(__name__)


class ProviderResult:
    """Result of a provider operation."""

    def __init__(self, changed: bool, identity_key: str, operation: str = "",
                 data: Optional[Any] = None, message: str = ""):
        self.changed = changed
        self.identity_key = identity_key
        self.operation = operation
        self.data = data
        self.message = message

    def __str__(self):
        return f"{'~' if self.changed else '='} {self.operation}({self.identity_key}) {self.message}".strip()

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary for events and serialization."""
        return {
            "Changed": self.changed,
            "IdentityKey": self.identity_key,
            "Operation": self.operation,
            "Message": self.message,
        }


class BaseProvider(ABC):
    """
    Abstract base class for all providers.

    A provider advertises the capabilities it supports as stable dotted
    identifiers (e.g. ``IdLE.Identity.Disable``).
    """

    def __init__(self, name: Optional[str] = None):
        self.name = name or self.__class__.__name__

        logger.info(f"Initialized provider {self.name}")

    @abstractmethod
    def get_capabilities(self) -> List[str]:
        """
        Return the capability identifiers this provider supports.

        Returns:
            List of capability identifiers
        """
        pass


class IdentityProvider(BaseProvider):
    """Role interface for identity lifecycle operations."""

    @abstractmethod
    def get_identity(self, identity_key: str) -> ProviderResult:
        """
        Look up an identity.

        Args:
            identity_key: Stable identity key (UPN, employee id, ...)

        Returns:
            ProviderResult whose data holds the identity attributes
        """
        pass

    @abstractmethod
    def create_identity(self, identity_key: str, attributes: Dict[str, Any]) -> ProviderResult:
        """Create the identity if it does not exist."""
        pass

    @abstractmethod
    def ensure_attribute(self, identity_key: str, name: str, value: Any) -> ProviderResult:
        """Set an attribute if it differs from the desired value."""
        pass

    @abstractmethod
    def disable_identity(self, identity_key: str) -> ProviderResult:
        """Disable the identity if it is enabled."""
        pass

    @abstractmethod
    def enable_identity(self, identity_key: str) -> ProviderResult:
        """Enable the identity if it is disabled."""
        pass


class EntitlementProvider(BaseProvider):
    """Role interface for entitlement (group/role) operations."""

    @abstractmethod
    def list_entitlements(self, identity_key: str) -> ProviderResult:
        pass

    @abstractmethod
    def grant_entitlement(self, identity_key: str, entitlement: Dict[str, Any]) -> ProviderResult:
        pass

    @abstractmethod
    def revoke_entitlement(self, identity_key: str, entitlement: Dict[str, Any]) -> ProviderResult:
        pass


class MockIdentityProvider(IdentityProvider, EntitlementProvider):
    """
    In-memory identity and entitlement provider for tests and dry runs.

    All operations are idempotent and report ``changed``. Not designed for
    concurrent mutation: share one instance across runs only from a single
    thread.
    """

    CAPABILITIES = [
        "IdLE.Identity.Read",
        "IdLE.Identity.Create",
        "IdLE.Identity.Attribute.Ensure",
        "IdLE.Identity.Disable",
        "IdLE.Identity.Enable",
        "IdLE.Entitlement.List",
        "IdLE.Entitlement.Grant",
        "IdLE.Entitlement.Revoke",
    ]

    def __init__(self, name: Optional[str] = None, capabilities: Optional[List[str]] = None,
                 identities: Optional[Dict[str, Dict[str, Any]]] = None):
        super().__init__(name)
        self.capabilities = list(capabilities) if capabilities is not None else list(self.CAPABILITIES)
        # identity_key -> {"Attributes": {...}, "Enabled": bool, "Entitlements": [...]}
        self.identities: Dict[str, Dict[str, Any]] = {}
        for key, attributes in (identities or {}).items():
            self.identities[key] = {"Attributes": dict(attributes), "Enabled": True, "Entitlements": []}

    def get_capabilities(self) -> List[str]:
        return list(self.capabilities)

    def _require(self, identity_key: str) -> Dict[str, Any]:
        identity = self.identities.get(identity_key)
        if identity is None:
            raise PermanentProviderError(f"Identity '{identity_key}' not found")
        return identity

    def get_identity(self, identity_key: str) -> ProviderResult:
        identity = self._require(identity_key)
        return ProviderResult(False, identity_key, "GetIdentity", data=dict(identity["Attributes"]))

    def create_identity(self, identity_key: str, attributes: Dict[str, Any]) -> ProviderResult:
        if identity_key in self.identities:
            return ProviderResult(False, identity_key, "CreateIdentity", message="already exists")

        self.identities[identity_key] = {
            "Attributes": dict(attributes or {}),
            "Enabled": True,
            "Entitlements": [],
        }
        logger.info(f"Mock created identity: {identity_key}")
        return ProviderResult(True, identity_key, "CreateIdentity")

    def ensure_attribute(self, identity_key: str, name: str, value: Any) -> ProviderResult:
        identity = self._require(identity_key)
        if identity["Attributes"].get(name) == value:
            return ProviderResult(False, identity_key, "EnsureAttribute", message=name)

        identity["Attributes"][name] = value
        logger.info(f"Mock set attribute {name} on {identity_key}")
        return ProviderResult(True, identity_key, "EnsureAttribute", message=name)

    def disable_identity(self, identity_key: str) -> ProviderResult:
        identity = self._require(identity_key)
        if not identity["Enabled"]:
            return ProviderResult(False, identity_key, "DisableIdentity")

        identity["Enabled"] = False
        logger.info(f"Mock disabled identity: {identity_key}")
        return ProviderResult(True, identity_key, "DisableIdentity")

    def enable_identity(self, identity_key: str) -> ProviderResult:
        identity = self._require(identity_key)
        if identity["Enabled"]:
            return ProviderResult(False, identity_key, "EnableIdentity")

        identity["Enabled"] = True
        logger.info(f"Mock enabled identity: {identity_key}")
        return ProviderResult(True, identity_key, "EnableIdentity")

    def list_entitlements(self, identity_key: str) -> ProviderResult:
        identity = self._require(identity_key)
        return ProviderResult(False, identity_key, "ListEntitlements",
                              data=[dict(e) for e in identity["Entitlements"]])

    def grant_entitlement(self, identity_key: str, entitlement: Dict[str, Any]) -> ProviderResult:
        identity = self._require(identity_key)
        key = self._entitlement_key(entitlement)
        if any(self._entitlement_key(e) == key for e in identity["Entitlements"]):
            return ProviderResult(False, identity_key, "GrantEntitlement", message=key[1])

        identity["Entitlements"].append(dict(entitlement))
        logger.info(f"Mock granted {key[0]}/{key[1]} to {identity_key}")
        return ProviderResult(True, identity_key, "GrantEntitlement", message=key[1])

    def revoke_entitlement(self, identity_key: str, entitlement: Dict[str, Any]) -> ProviderResult:
        identity = self._require(identity_key)
        key = self._entitlement_key(entitlement)
        remaining = [e for e in identity["Entitlements"] if self._entitlement_key(e) != key]
        if len(remaining) == len(identity["Entitlements"]):
            return ProviderResult(False, identity_key, "RevokeEntitlement", message=key[1])

        identity["Entitlements"] = remaining
        logger.info(f"Mock revoked {key[0]}/{key[1]} from {identity_key}")
        return ProviderResult(True, identity_key, "RevokeEntitlement", message=key[1])

    @staticmethod
    def _entitlement_key(entitlement: Dict[str, Any]) -> tuple:
        return (entitlement.get("Kind", "Group"), entitlement.get("Id") or entitlement.get("Name"))

    def get_mock_state(self) -> Dict[str, Any]:
        """Get current mock state for inspection."""
        return {"identities": self.identities}
