"""
Exception taxonomy for the IdLE engine.

Planning errors abort before any Plan is produced. Execution errors raised by
step handlers are captured per step; only boundary violations (security,
missing providers, malformed plan/options) propagate to the caller.
"""

from typing import Iterable, List, Optional


class IdleError(Exception):
    """Base class for all engine errors."""


class SecurityViolation(IdleError):
    """An executable/callable value was found where only data is allowed."""

    def __init__(self, path: str, message: Optional[str] = None):
        self.path = path
        super().__init__(
            message
            or f"Security violation: '{path}' contains an executable value. "
            "Only data (maps, lists, scalars) may cross this boundary."
        )


class ValidationError(IdleError):
    """Malformed workflow, condition, request or options."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


class TemplateResolutionError(ValidationError):
    """A template placeholder could not be resolved against the request."""


class LifecycleEventMismatch(IdleError):
    """The workflow's LifecycleEvent does not match the request type."""

    def __init__(self, workflow_event: str, request_type: str):
        self.workflow_event = workflow_event
        self.request_type = request_type
        super().__init__(
            f"Workflow LifecycleEvent '{workflow_event}' does not match "
            f"request type '{request_type}'."
        )


class MissingStepTypeMetadata(IdleError):
    """A workflow references a step type absent from the merged catalog."""

    def __init__(self, step_type: str, step_name: Optional[str] = None):
        self.step_type = step_type
        self.step_name = step_name
        where = f" (step '{step_name}')" if step_name else ""
        super().__init__(
            f"Missing step type metadata for '{step_type}'{where}. "
            "Load the step pack that owns this step type, or supply metadata "
            "via Providers.StepMetadata."
        )


class DuplicateStepTypeMetadata(IdleError):
    """Two contributors define metadata for the same step type."""

    def __init__(self, step_type: str, first_owner: str, second_owner: str):
        self.step_type = step_type
        self.owners = (first_owner, second_owner)
        super().__init__(
            f"Duplicate step type metadata for '{step_type}': defined by both "
            f"'{first_owner}' and '{second_owner}'. Step types are owned by exactly "
            "one step pack; supplement the catalog with new step types instead of "
            "overriding existing ones."
        )


class MissingCapabilities(IdleError):
    """Planned steps require capabilities no supplied provider advertises."""

    def __init__(self, missing: Iterable[tuple]):
        # missing: (step_name, [capability, ...]) pairs
        self.missing = [(name, list(caps)) for name, caps in missing]
        details = "; ".join(
            f"step '{name}' requires {', '.join(caps)}" for name, caps in self.missing
        )
        super().__init__(f"Missing capabilities: {details}.")

    @property
    def capabilities(self) -> List[str]:
        return sorted({cap for _, caps in self.missing for cap in caps})


class ProvidersRequired(IdleError):
    """Execution needs a provider map and none was supplied or retained."""

    def __init__(self):
        super().__init__(
            "Providers are required: pass providers explicitly or plan with a "
            "provider map so the plan retains it."
        )


class UnknownRetryProfile(IdleError):
    """A step references a retry profile that was not supplied."""

    def __init__(self, profile_name: str, step_name: Optional[str] = None):
        self.profile_name = profile_name
        self.step_name = step_name
        where = f"Step '{step_name}' references" if step_name else "Reference to"
        super().__init__(f"{where} an unknown RetryProfile '{profile_name}'.")


class ProviderError(IdleError):
    """Base class for provider operation failures."""

    transient = False


class TransientProviderError(ProviderError):
    """Retryable provider failure (throttling, timeouts)."""

    transient = True


class PermanentProviderError(ProviderError):
    """Non-retryable provider failure."""


class AuthSessionUnavailable(IdleError):
    """No broker configured, or the broker has no matching/default session."""


class StepHandlerNotFound(IdleError):
    """No handler could be resolved for a step type."""


class EventSinkError(IdleError):
    """The external event sink failed to accept an event."""


def mark_transient(exc: BaseException) -> BaseException:
    """
    Attach the transient marker to an arbitrary exception.

    Lets third-party provider errors opt into retry without subclassing
    TransientProviderError.
    """
    exc.transient = True
    return exc


def is_transient(exc: BaseException) -> bool:
    """Return True if the exception is marked retryable."""
    return bool(getattr(exc, "transient", False))
