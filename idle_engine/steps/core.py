"""
Built-in step types, always loaded.

``IdLE.EmitEvent`` writes a Custom event; ``IdLE.AcquireAuthSession``
acquires a named session through Providers.AuthSessionBroker.
"""

import logging

from ..errors import ValidationError
from .registry import StepPack

logger = logging.getLogger(__name__)

CORE_PACK_NAME = "IdLE.Steps.Core"
EMIT_EVENT = "IdLE.EmitEvent"
ACQUIRE_AUTH_SESSION = "IdLE.AcquireAuthSession"


def invoke_emit_event(context, step):
    """Emit a Custom event with the step's Message and Data inputs."""
    inputs = step.with_
    context.emit_event(str(inputs.get("Message", "")), data=inputs.get("Data"), step_name=step.name)


def invoke_acquire_auth_session(context, step):
    """Acquire the session named by the step's Name input."""
    name = step.with_.get("Name")
    if not isinstance(name, str) or not name:
        raise ValidationError(f"Step '{step.name}' requires a Name input", path=f"{step.name}.With.Name")

    context.acquire_auth_session(name, step.with_.get("Options"))
    logger.info(f"Acquired auth session '{name}' for step {step.name}")


CORE_STEP_PACK = StepPack(
    CORE_PACK_NAME,
    metadata={
        EMIT_EVENT: {"RequiredCapabilities": [], "Handler": "invoke_emit_event"},
        ACQUIRE_AUTH_SESSION: {"RequiredCapabilities": [], "Handler": "invoke_acquire_auth_session"},
    },
    handlers=[invoke_emit_event, invoke_acquire_auth_session],
)
