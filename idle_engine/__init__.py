"""
IdLE - Identity Lifecycle Engine

Plans and executes Joiner-Mover-Leaver identity workflows against
pluggable providers. Workflows are declarative data; plans are immutable,
capability-validated and exportable; every event leaving the engine is
redacted.
"""

__version__ = "0.9.0"
__author__ = "IdLE Engine Team"
__email__ = "team@example.com"

from .audit import EventSink, JsonlEventSink, LoggingEventSink, export_plan, export_plan_to_file
from .engine import Executor, Planner, StepContext, invoke_plan, new_plan
from .errors import (
    AuthSessionUnavailable,
    DuplicateStepTypeMetadata,
    EventSinkError,
    IdleError,
    LifecycleEventMismatch,
    MissingCapabilities,
    MissingStepTypeMetadata,
    PermanentProviderError,
    ProvidersRequired,
    SecurityViolation,
    TransientProviderError,
    UnknownRetryProfile,
    ValidationError,
    mark_transient,
)
from .models import (
    ExecutionOptions,
    ExecutionResult,
    LifecycleRequest,
    Plan,
    RetryProfile,
    WorkflowDefinition,
)
from .providers import AuthSessionBroker, MockIdentityProvider, SessionMapBroker
from .security import redact
from .steps import StepHandlerRegistry, StepPack, load_common_step_pack

__all__ = [
    "Planner",
    "new_plan",
    "Executor",
    "invoke_plan",
    "StepContext",
    "export_plan",
    "export_plan_to_file",
    "EventSink",
    "JsonlEventSink",
    "LoggingEventSink",
    "LifecycleRequest",
    "WorkflowDefinition",
    "Plan",
    "ExecutionOptions",
    "ExecutionResult",
    "RetryProfile",
    "AuthSessionBroker",
    "SessionMapBroker",
    "MockIdentityProvider",
    "StepPack",
    "StepHandlerRegistry",
    "load_common_step_pack",
    "redact",
    "IdleError",
    "SecurityViolation",
    "ValidationError",
    "LifecycleEventMismatch",
    "MissingStepTypeMetadata",
    "DuplicateStepTypeMetadata",
    "MissingCapabilities",
    "ProvidersRequired",
    "UnknownRetryProfile",
    "TransientProviderError",
    "PermanentProviderError",
    "AuthSessionUnavailable",
    "EventSinkError",
    "mark_transient",
]
