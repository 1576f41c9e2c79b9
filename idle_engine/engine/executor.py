"""
Executor for the IdLE engine.

Runs a plan's steps strictly in order, applying per-step retry, event
emission and best-effort OnFailure recovery. Ordinary step failures are
reported in the ExecutionResult; only boundary violations raise.
"""

import logging
import time
from typing import Any, Callable, Iterable, Mapping, Optional, Tuple

from ..audit.events import EventBuffer
from ..errors import EventSinkError, ProvidersRequired, SecurityViolation, ValidationError, is_transient
from ..models import (
    EventType,
    ExecutionOptions,
    ExecutionResult,
    ExecutionStatus,
    OnFailureExecutionResult,
    OnFailureStatus,
    Plan,
    PlanStep,
    RetryProfile,
    StepResult,
    StepStatus,
    thaw,
)
from ..providers.base_provider import ProviderResult
from ..security.redaction import redact
from ..security.validator import assert_no_callables
from ..steps.core import CORE_STEP_PACK
from ..steps.registry import StepHandlerRegistry, StepPack, call_handler, validate_step_registry
from .context import StepContext
from .retry import backoff_delay_ms, describe, effective_retry_profile

logger = logging.getLogger(__name__)

_PRIMARY_EVENTS = (EventType.STEP_STARTED, EventType.STEP_COMPLETED, EventType.STEP_FAILED)
_ON_FAILURE_EVENTS = (
    EventType.ON_FAILURE_STEP_STARTED,
    EventType.ON_FAILURE_STEP_COMPLETED,
    EventType.ON_FAILURE_STEP_FAILED,
)


def _changed(output: Any) -> Optional[bool]:
    if isinstance(output, ProviderResult):
        return output.changed
    if isinstance(output, Mapping) and "Changed" in output:
        return bool(output["Changed"])
    return None


def _working_copy(step: PlanStep) -> PlanStep:
    """Step handed to a handler attempt, with mutable data of its own."""
    return step.model_copy(update={
        "condition": thaw(step.condition),
        "with_": thaw(step.with_),
        "expected_state": thaw(step.expected_state),
    })


class Executor:
    """
    Step-execution state machine.

    Per step: Planned -> Running -> Completed | Failed, or NotApplicable.
    Per run: Running -> Completed | Failed; a failed run triggers the
    OnFailure sub-run (NotRun -> Running -> Completed | PartiallyFailed).
    """

    def __init__(
        self,
        step_packs: Optional[Iterable[StepPack]] = None,
        handlers: Optional[StepHandlerRegistry] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the executor.

        Args:
            step_packs: Loaded step packs whose handlers become resolvable
            handlers: Pre-populated registration table (host-registered handlers)
            sleep: Function used for retry backoff, in seconds
        """
        self.handlers = handlers if handlers is not None else StepHandlerRegistry()
        self.handlers.register_pack(CORE_STEP_PACK)
        for pack in step_packs or []:
            self.handlers.register_pack(pack)
        self.sleep = sleep

    def invoke(
        self,
        plan: Plan,
        providers: Optional[Mapping[str, Any]] = None,
        options: Any = None,
        event_sink: Optional[Any] = None,
        what_if: bool = False,
    ) -> ExecutionResult:
        """
        Execute a plan.

        Args:
            plan: Plan produced by the planner
            providers: Provider map; falls back to the plan's retained map
            options: ExecutionOptions or its mapping form
            event_sink: Object exposing write_event(event)
            what_if: Return immediately without running anything

        Returns:
            ExecutionResult (never raised for ordinary step failures)

        Raises:
            ProvidersRequired: No provider map supplied or retained
            SecurityViolation: Executable values in plan, providers, options or sink
            EventSinkError: The external event sink failed
            ValidationError: Malformed plan, options or StepRegistry
        """
        if what_if:
            logger.info("WhatIf requested: skipping execution")
            return ExecutionResult(
                status=ExecutionStatus.WHAT_IF,
                correlation_id=getattr(plan, "correlation_id", None),
            )

        if not isinstance(plan, Plan):
            raise ValidationError("Plan must be a Plan produced by the planner", path="Plan")

        effective = providers if providers is not None else plan.providers
        if effective is None:
            raise ProvidersRequired()
        if not isinstance(effective, Mapping):
            raise ValidationError("Providers must be a mapping of alias to provider", path="Providers")

        if options is not None and not isinstance(options, ExecutionOptions):
            assert_no_callables(options, "ExecutionOptions")
        execution_options = ExecutionOptions.from_data(options or {}, "ExecutionOptions")

        assert_no_callables(plan, "Plan")
        assert_no_callables(effective, "Providers")
        validate_step_registry(effective.get("StepRegistry"))

        events = EventBuffer(event_sink)
        context = StepContext(plan, effective, events)
        step_registry = effective.get("StepRegistry")

        logger.info(
            f"Run started for workflow '{plan.workflow_name}' ({plan.correlation_id}), "
            f"{len(plan.steps)} steps"
        )
        events.emit_new(
            EventType.RUN_STARTED,
            f"Run started for workflow '{plan.workflow_name}'",
            data={
                "CorrelationId": plan.correlation_id,
                "WorkflowName": plan.workflow_name,
                "LifecycleEvent": plan.lifecycle_event,
                "StepCount": len(plan.steps),
            },
        )

        results = []
        failed = False
        for step in plan.steps:
            result = self._run_step(step, context, events, execution_options, step_registry, _PRIMARY_EVENTS)
            results.append(result)
            if result.status == StepStatus.FAILED:
                failed = True
                break

        on_failure = OnFailureExecutionResult()
        if failed:
            on_failure = self._run_on_failure(plan, context, events, execution_options, step_registry)

        status = ExecutionStatus.FAILED if failed else ExecutionStatus.COMPLETED
        events.emit_new(
            EventType.RUN_COMPLETED,
            f"Run completed with status {status.value}",
            data={"Status": status.value, "OnFailureStatus": on_failure.status.value},
        )
        logger.info(f"Run {plan.correlation_id} completed: {status.value}")

        return ExecutionResult(
            status=status,
            correlation_id=plan.correlation_id,
            steps=tuple(results),
            on_failure=on_failure,
            events=events.events,
            providers=redact(dict(effective)),
        )

    def _run_on_failure(
        self,
        plan: Plan,
        context: StepContext,
        events: EventBuffer,
        options: ExecutionOptions,
        step_registry: Optional[Mapping[str, str]],
    ) -> OnFailureExecutionResult:
        events.emit_new(
            EventType.ON_FAILURE_STARTED,
            "OnFailure steps started",
            data={"StepCount": len(plan.on_failure_steps)},
        )

        # Best effort: a failing cleanup step never blocks the next one.
        results = tuple(
            self._run_step(step, context, events, options, step_registry, _ON_FAILURE_EVENTS)
            for step in plan.on_failure_steps
        )

        if any(r.status == StepStatus.FAILED for r in results):
            status = OnFailureStatus.PARTIALLY_FAILED
        else:
            status = OnFailureStatus.COMPLETED

        events.emit_new(
            EventType.ON_FAILURE_COMPLETED,
            f"OnFailure steps completed with status {status.value}",
            data={"Status": status.value},
        )
        return OnFailureExecutionResult(status=status, steps=results)

    def _run_step(
        self,
        step: PlanStep,
        context: StepContext,
        events: EventBuffer,
        options: ExecutionOptions,
        step_registry: Optional[Mapping[str, str]],
        event_types: Tuple[EventType, EventType, EventType],
    ) -> StepResult:
        started_type, completed_type, failed_type = event_types

        if not step.is_applicable:
            events.emit_new(
                EventType.STEP_NOT_APPLICABLE,
                f"Step '{step.name}' is not applicable",
                step.name,
                {"StepType": step.type},
            )
            return StepResult(name=step.name, type=step.type, status=StepStatus.NOT_APPLICABLE)

        events.emit_new(started_type, f"Step '{step.name}' started", step.name, {"StepType": step.type})

        attempts = 0
        error: Optional[BaseException] = None
        output = None
        context.current_step = step.name
        try:
            profile = effective_retry_profile(step, options)
            handler_name, handler = self.handlers.resolve(step.type, step_registry)
            logger.debug(
                f"Step '{step.name}' -> handler {handler_name}, retry {describe(profile)}"
            )
            output, attempts, error = self._invoke_with_retry(handler, step, context, events, profile)
        except (SecurityViolation, EventSinkError):
            raise
        except Exception as e:
            error = e
        finally:
            context.current_step = None

        if error is not None:
            message = str(error) or type(error).__name__
            logger.error(f"Step '{step.name}' failed after {attempts} attempt(s): {message}")
            events.emit_new(
                failed_type,
                f"Step '{step.name}' failed: {message}",
                step.name,
                {"StepType": step.type, "Attempts": attempts, "Error": message},
            )
            return StepResult(
                name=step.name, type=step.type, status=StepStatus.FAILED,
                error=message, attempts=attempts,
            )

        data = {"StepType": step.type, "Attempts": attempts}
        changed = _changed(output)
        if changed is not None:
            data["Changed"] = changed
        events.emit_new(completed_type, f"Step '{step.name}' completed", step.name, data)
        return StepResult(name=step.name, type=step.type, status=StepStatus.COMPLETED, attempts=attempts)

    def _invoke_with_retry(
        self,
        handler: Callable,
        step: PlanStep,
        context: StepContext,
        events: EventBuffer,
        profile: RetryProfile,
    ) -> Tuple[Any, int, Optional[BaseException]]:
        """
        Call a handler up to the profile's attempt limit.

        Only transient errors are retried.

        Returns:
            (handler output, attempts made, final error or None)
        """
        total = profile.total_attempts
        attempt = 0
        while True:
            attempt += 1
            try:
                return call_handler(handler, context, _working_copy(step)), attempt, None
            except (SecurityViolation, EventSinkError):
                raise
            except Exception as e:
                if attempt >= total or not is_transient(e):
                    return None, attempt, e
                error = e

            delay = backoff_delay_ms(profile, attempt)
            logger.warning(
                f"Step '{step.name}' attempt {attempt}/{total} failed with transient error: {error}; "
                f"retrying in {delay}ms"
            )
            if delay > 0:
                self.sleep(delay / 1000.0)
            events.emit_new(
                EventType.STEP_RETRYING,
                f"Retrying step '{step.name}' (attempt {attempt + 1} of {total})",
                step.name,
                {"Attempt": attempt, "NextAttempt": attempt + 1, "DelayMilliseconds": delay, "Error": str(error)},
            )


def invoke_plan(
    plan: Plan,
    providers: Optional[Mapping[str, Any]] = None,
    options: Any = None,
    event_sink: Optional[Any] = None,
    what_if: bool = False,
    step_packs: Optional[Iterable[StepPack]] = None,
) -> ExecutionResult:
    """Convenience wrapper around ``Executor(step_packs).invoke(...)``."""
    return Executor(step_packs).invoke(
        plan, providers=providers, options=options, event_sink=event_sink, what_if=what_if
    )
