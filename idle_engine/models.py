"""
Core data models for the IdLE engine.

This module defines the Pydantic models used throughout the engine for
lifecycle requests, workflow definitions, plans, execution results and events.
Field names are snake_case in Python and PascalCase when authored or
serialized (``CorrelationId`` <-> ``correlation_id``).
"""

import copy
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_pascal

from .errors import ValidationError
from .security.validator import assert_no_callables


class LifecycleType(str, Enum):
    """Business intents understood out of the box. Other strings are allowed."""
    JOINER = "Joiner"
    MOVER = "Mover"
    LEAVER = "Leaver"


class PlanStepStatus(str, Enum):
    """Applicability of a step, fixed at planning time."""
    PLANNED = "Planned"
    NOT_APPLICABLE = "NotApplicable"


class StepStatus(str, Enum):
    """Outcome of a step invocation."""
    COMPLETED = "Completed"
    FAILED = "Failed"
    NOT_APPLICABLE = "NotApplicable"


class ExecutionStatus(str, Enum):
    """Outcome of a whole run."""
    COMPLETED = "Completed"
    FAILED = "Failed"
    PARTIALLY_FAILED = "PartiallyFailed"
    WHAT_IF = "WhatIf"


class OnFailureStatus(str, Enum):
    """Outcome of the OnFailure sub-run."""
    NOT_RUN = "NotRun"
    COMPLETED = "Completed"
    PARTIALLY_FAILED = "PartiallyFailed"


class EventType(str, Enum):
    """Structured event types. Ordering is a contract: RunStarted first, RunCompleted last."""
    RUN_STARTED = "RunStarted"
    STEP_STARTED = "StepStarted"
    STEP_COMPLETED = "StepCompleted"
    STEP_FAILED = "StepFailed"
    STEP_RETRYING = "StepRetrying"
    STEP_NOT_APPLICABLE = "StepNotApplicable"
    ON_FAILURE_STARTED = "OnFailureStarted"
    ON_FAILURE_STEP_STARTED = "OnFailureStepStarted"
    ON_FAILURE_STEP_COMPLETED = "OnFailureStepCompleted"
    ON_FAILURE_STEP_FAILED = "OnFailureStepFailed"
    ON_FAILURE_COMPLETED = "OnFailureCompleted"
    RUN_COMPLETED = "RunCompleted"
    CUSTOM = "Custom"


def _format_location(loc: Tuple[Any, ...]) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path


def _read_only(self, *args, **kwargs):
    raise TypeError(f"{type(self).__name__} is read-only")


class FrozenDict(dict):
    """A dict whose contents cannot change after construction."""

    __setitem__ = __delitem__ = __ior__ = _read_only
    clear = pop = popitem = setdefault = update = _read_only

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return FrozenDict((key, copy.deepcopy(item, memo)) for key, item in self.items())

    def __reduce__(self):
        return (FrozenDict, (dict(self),))


class FrozenList(list):
    """A list whose contents cannot change after construction."""

    __setitem__ = __delitem__ = __iadd__ = __imul__ = _read_only
    append = extend = insert = remove = pop = clear = sort = reverse = _read_only

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return FrozenList(copy.deepcopy(item, memo) for item in self)

    def __reduce__(self):
        return (FrozenList, (list(self),))


def freeze(value: Any, _on_path: Optional[Set[int]] = None) -> Any:
    """
    Return a read-only copy of nested dicts, lists and sets.

    Containers are rebuilt; other values are kept by reference, so provider
    objects stay the same instances. Cyclic data is rejected.
    """
    if not isinstance(value, (Mapping, list, tuple, set, frozenset)):
        return value

    on_path = _on_path if _on_path is not None else set()
    marker = id(value)
    if marker in on_path:
        raise ValueError("cyclic data cannot be frozen")
    on_path.add(marker)
    try:
        if isinstance(value, Mapping):
            return FrozenDict((key, freeze(item, on_path)) for key, item in value.items())
        if isinstance(value, list):
            return FrozenList(freeze(item, on_path) for item in value)
        if isinstance(value, tuple):
            return tuple(freeze(item, on_path) for item in value)
        return frozenset(freeze(item, on_path) for item in value)
    finally:
        on_path.discard(marker)


def thaw(value: Any) -> Any:
    """Return a mutable deep copy of frozen data (dicts and lists become plain again)."""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, list):
        return [thaw(item) for item in value]
    if isinstance(value, tuple):
        return tuple(thaw(item) for item in value)
    return copy.deepcopy(value)


class IdleModel(BaseModel):
    """Base model: PascalCase aliases, construction by either name, immutable."""

    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True, frozen=True)

    @classmethod
    def from_data(cls, data: Any, source: Optional[str] = None):
        """
        Validate raw data into this model, raising the engine ValidationError.

        Args:
            data: Mapping (or an existing instance) to validate
            source: Label used as the root of error paths (file name, argument name)

        Returns:
            Validated model instance
        """
        if isinstance(data, cls):
            return data
        root = source or cls.__name__
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            errors = e.errors()
            first = errors[0] if errors else {"loc": (), "msg": str(e)}
            location = _format_location(tuple(first.get("loc", ())))
            path = f"{root}.{location}" if location else root
            details = "; ".join(
                f"{_format_location(tuple(err.get('loc', ()))) or root}: {err.get('msg')}"
                for err in errors
            )
            raise ValidationError(f"Invalid {cls.__name__} in {root}: {details}", path=path) from e


class LifecycleRequest(IdleModel):
    """Business intent (Joiner/Mover/Leaver/...) driving a plan."""
    type: str = Field(..., description="Lifecycle intent, e.g. Joiner")
    correlation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    actor: Optional[str] = Field(None, description="Who requested the change")
    identity_keys: Dict[str, Any] = Field(default_factory=dict)
    desired_state: Dict[str, Any] = Field(default_factory=dict)
    changes: Optional[Dict[str, Any]] = Field(None, description="Attribute deltas for movers")

    @field_validator("type", mode="before")
    @classmethod
    def validate_type(cls, v: Any) -> Any:
        if isinstance(v, Enum):
            v = v.value
        if isinstance(v, str) and not v.strip():
            raise ValueError("Type must not be empty")
        return v

    @field_validator("correlation_id", mode="before")
    @classmethod
    def validate_correlation_id(cls, v: Any) -> str:
        if v is None:
            return str(uuid.uuid4())
        try:
            return str(uuid.UUID(str(v)))
        except ValueError:
            raise ValueError(f"CorrelationId must be a UUID, got '{v}'")

    @field_validator("identity_keys", "desired_state", mode="before")
    @classmethod
    def default_empty_map(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("identity_keys", "desired_state", "changes")
    @classmethod
    def freeze_data(cls, v: Any) -> Any:
        # Callers keep no handle on the request's nested data.
        return freeze(v)

    @model_validator(mode="after")
    def reject_callables(self) -> "LifecycleRequest":
        assert_no_callables(self.identity_keys, "Request.IdentityKeys")
        assert_no_callables(self.desired_state, "Request.DesiredState")
        assert_no_callables(self.changes, "Request.Changes")
        return self

    def to_context(self) -> Dict[str, Any]:
        """Request data keyed by PascalCase names, for conditions and templates."""
        return {
            "Type": self.type,
            "CorrelationId": self.correlation_id,
            "Actor": self.actor,
            "IdentityKeys": thaw(self.identity_keys),
            "DesiredState": thaw(self.desired_state),
            "Changes": thaw(self.changes),
        }


class StepDefinition(IdleModel):
    """A workflow-authored step."""
    model_config = ConfigDict(extra="forbid")

    name: str
    type: str
    description: Optional[str] = None
    condition: Optional[Dict[str, Any]] = None
    with_: Dict[str, Any] = Field(default_factory=dict, alias="With")
    retry_profile: Optional[str] = None
    expected_state: Optional[Dict[str, Any]] = None

    @field_validator("name", "type")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v

    @field_validator("with_", mode="before")
    @classmethod
    def default_with(cls, v: Any) -> Any:
        return {} if v is None else v


class WorkflowDefinition(IdleModel):
    """A parsed workflow. Unknown root keys are rejected."""
    model_config = ConfigDict(extra="forbid")

    name: str
    lifecycle_event: str
    description: Optional[str] = None
    steps: Tuple[StepDefinition, ...] = ()
    on_failure_steps: Tuple[StepDefinition, ...] = ()

    @field_validator("steps", "on_failure_steps", mode="before")
    @classmethod
    def default_steps(cls, v: Any) -> Any:
        return () if v is None else v

    @model_validator(mode="after")
    def unique_step_names(self) -> "WorkflowDefinition":
        seen = set()
        for step in self.steps + self.on_failure_steps:
            if step.name in seen:
                raise ValueError(f"Duplicate step name '{step.name}'")
            seen.add(step.name)
        return self


class PlanStep(IdleModel):
    """Normalized, planning-time projection of a StepDefinition."""
    name: str
    type: str
    description: Optional[str] = None
    condition: Optional[Dict[str, Any]] = None
    with_: Dict[str, Any] = Field(default_factory=dict, alias="With")
    retry_profile: Optional[str] = None
    expected_state: Optional[Dict[str, Any]] = None
    status: PlanStepStatus = PlanStepStatus.PLANNED
    requires_capabilities: Tuple[str, ...] = ()

    @field_validator("condition", "with_", "expected_state")
    @classmethod
    def freeze_data(cls, v: Any) -> Any:
        return freeze(v)

    @property
    def is_applicable(self) -> bool:
        return self.status == PlanStepStatus.PLANNED


class Plan(IdleModel):
    """Immutable output of planning."""
    correlation_id: str
    workflow_name: str
    lifecycle_event: str
    request: LifecycleRequest
    steps: Tuple[PlanStep, ...] = ()
    on_failure_steps: Tuple[PlanStep, ...] = ()
    providers: Optional[Dict[str, Any]] = None
    actions: Tuple[Dict[str, Any], ...] = ()
    warnings: Tuple[str, ...] = ()

    @field_validator("providers", "actions")
    @classmethod
    def freeze_data(cls, v: Any) -> Any:
        # Provider instances are kept by reference; only the containers are frozen.
        return freeze(v)

    def to_context(self) -> Dict[str, Any]:
        """Plan data keyed by PascalCase names, for conditions and step context."""
        return {
            "CorrelationId": self.correlation_id,
            "WorkflowName": self.workflow_name,
            "LifecycleEvent": self.lifecycle_event,
            "Actor": self.request.actor,
        }


class RetryProfile(IdleModel):
    """Retry policy. MaxAttempts 0 means a single attempt."""
    model_config = ConfigDict(extra="forbid")

    max_attempts: int = Field(0, ge=0, le=10)
    initial_delay_milliseconds: int = Field(0, ge=0)
    max_delay_milliseconds: int = Field(0, ge=0)

    @model_validator(mode="after")
    def validate_delays(self) -> "RetryProfile":
        if self.max_delay_milliseconds < self.initial_delay_milliseconds:
            raise ValueError(
                "MaxDelayMilliseconds must be greater than or equal to InitialDelayMilliseconds"
            )
        return self

    @property
    def total_attempts(self) -> int:
        return max(1, self.max_attempts)


class ExecutionOptions(IdleModel):
    """Options supplied at invoke time."""
    model_config = ConfigDict(extra="forbid")

    retry_profiles: Dict[str, RetryProfile] = Field(default_factory=dict)
    default_retry_profile: Optional[str] = None

    @field_validator("retry_profiles", mode="before")
    @classmethod
    def default_profiles(cls, v: Any) -> Any:
        return {} if v is None else v

    @model_validator(mode="after")
    def validate_default(self) -> "ExecutionOptions":
        if self.default_retry_profile and self.default_retry_profile not in self.retry_profiles:
            raise ValueError(
                f"DefaultRetryProfile '{self.default_retry_profile}' is not defined in RetryProfiles"
            )
        return self


class Event(IdleModel):
    """A structured engine event."""
    type: EventType
    message: str = ""
    step_name: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class StepResult(IdleModel):
    """Result of a single step invocation."""
    name: str
    type: str
    status: StepStatus
    error: Optional[str] = None
    attempts: int = 0


class OnFailureExecutionResult(IdleModel):
    """Result of the OnFailure sub-run."""
    status: OnFailureStatus = OnFailureStatus.NOT_RUN
    steps: Tuple[StepResult, ...] = ()


class ExecutionResult(IdleModel):
    """Result of one invoke call. Providers is a redacted snapshot."""
    status: ExecutionStatus
    correlation_id: Optional[str] = None
    steps: Tuple[StepResult, ...] = ()
    on_failure: OnFailureExecutionResult = Field(default_factory=OnFailureExecutionResult)
    events: Tuple[Event, ...] = ()
    providers: Dict[str, Any] = Field(default_factory=dict)

    @property
    def failed_steps(self) -> Tuple[StepResult, ...]:
        return tuple(s for s in self.steps if s.status == StepStatus.FAILED)
