"""
Common identity and entitlement step pack.

Each handler resolves its provider from the ``Provider`` input (default
alias ``Identity``) and calls one idempotent provider operation. Operations
report ``Changed`` so re-running a step after a partial failure is safe.
"""

import logging
from pathlib import Path
from typing import Any, Dict

from ..errors import ValidationError
from .registry import StepPack

logger = logging.getLogger(__name__)

COMMON_PACK_NAME = "IdLE.Steps.Common"
DEFAULT_PROVIDER_ALIAS = "Identity"
METADATA_FILE = Path(__file__).parent / "step_metadata.yaml"


def _require_input(step, name: str) -> Any:
    value = step.with_.get(name)
    if value is None or value == "":
        raise ValidationError(f"Step '{step.name}' requires a {name} input", path=f"{step.name}.With.{name}")
    return value


def _provider(context, step):
    return context.get_provider(step.with_.get("Provider", DEFAULT_PROVIDER_ALIAS))


def invoke_create_identity(context, step):
    identity_key = _require_input(step, "IdentityKey")
    attributes: Dict[str, Any] = step.with_.get("Attributes") or {}
    return _provider(context, step).create_identity(identity_key, dict(attributes))


def invoke_ensure_attribute(context, step):
    identity_key = _require_input(step, "IdentityKey")
    name = _require_input(step, "Name")
    return _provider(context, step).ensure_attribute(identity_key, name, step.with_.get("Value"))


def invoke_disable_identity(context, step):
    identity_key = _require_input(step, "IdentityKey")
    return _provider(context, step).disable_identity(identity_key)


def invoke_enable_identity(context, step):
    identity_key = _require_input(step, "IdentityKey")
    return _provider(context, step).enable_identity(identity_key)


def invoke_grant_entitlement(context, step):
    identity_key = _require_input(step, "IdentityKey")
    entitlement = _require_input(step, "Entitlement")
    return _provider(context, step).grant_entitlement(identity_key, dict(entitlement))


def invoke_revoke_entitlement(context, step):
    identity_key = _require_input(step, "IdentityKey")
    entitlement = _require_input(step, "Entitlement")
    return _provider(context, step).revoke_entitlement(identity_key, dict(entitlement))


def load_common_step_pack() -> StepPack:
    """Load the common pack with its bundled metadata catalog."""
    return StepPack.from_yaml(
        COMMON_PACK_NAME,
        METADATA_FILE,
        handlers=[
            invoke_create_identity,
            invoke_ensure_attribute,
            invoke_disable_identity,
            invoke_enable_identity,
            invoke_grant_entitlement,
            invoke_revoke_entitlement,
        ],
    )
