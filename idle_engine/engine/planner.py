"""
Planner for the IdLE engine.

Turns a workflow definition and a lifecycle request into an immutable,
capability-validated Plan. Planning either succeeds completely or raises;
no partial plan is ever returned.
"""

import copy
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..errors import LifecycleEventMismatch, MissingCapabilities, ValidationError
from ..models import LifecycleRequest, Plan, PlanStep, PlanStepStatus, StepDefinition, WorkflowDefinition
from ..security.validator import assert_no_callables
from ..steps.registry import StepPack, validate_step_registry
from .capability_resolver import (
    Catalog,
    CapabilityResolver,
    collect_provider_capabilities,
    find_missing_capabilities,
    required_capabilities,
)
from .conditions import is_applicable
from .templates import resolve_templates

logger = logging.getLogger(__name__)


class Planner:
    """
    Builds plans from workflows and requests.

    Step packs are supplied explicitly; the built-in core pack is always
    included.
    """

    def __init__(self, step_packs: Optional[Iterable[StepPack]] = None):
        """
        Initialize the planner.

        Args:
            step_packs: Loaded step packs contributing step-type metadata
        """
        self.resolver = CapabilityResolver(step_packs)

    def plan(
        self,
        workflow: Any,
        request: Any,
        providers: Optional[Mapping[str, Any]] = None,
    ) -> Plan:
        """
        Create a plan.

        Args:
            workflow: WorkflowDefinition or its mapping form
            request: LifecycleRequest or its mapping form
            providers: Provider map, optionally with StepRegistry and StepMetadata

        Returns:
            Immutable Plan

        Raises:
            ValidationError: Malformed workflow, request, condition or template
            SecurityViolation: Executable values in the inputs
            LifecycleEventMismatch: Workflow event differs from the request type
            MissingStepTypeMetadata: A step type is absent from the catalog
            DuplicateStepTypeMetadata: Conflicting catalog contributions
            MissingCapabilities: A planned step needs an unadvertised capability
        """
        if isinstance(workflow, Mapping):
            assert_no_callables(workflow, "Workflow")
        workflow = WorkflowDefinition.from_data(workflow, "Workflow")
        request = LifecycleRequest.from_data(request, "Request")
        assert_no_callables(workflow, "Workflow")

        if providers is not None:
            if not isinstance(providers, Mapping):
                raise ValidationError("Providers must be a mapping of alias to provider", path="Providers")
            assert_no_callables(providers, "Providers")
            validate_step_registry(providers.get("StepRegistry"))

        if workflow.lifecycle_event != request.type:
            raise LifecycleEventMismatch(workflow.lifecycle_event, request.type)

        logger.info(
            f"Planning workflow '{workflow.name}' for {request.type} request {request.correlation_id}"
        )

        catalog = self.resolver.resolve_catalog((providers or {}).get("StepMetadata"))
        advertised = collect_provider_capabilities(providers)

        context = {
            "Plan": {
                "CorrelationId": request.correlation_id,
                "WorkflowName": workflow.name,
                "LifecycleEvent": workflow.lifecycle_event,
                "Actor": request.actor,
            },
            "Request": request.to_context(),
        }

        steps = self._plan_steps(workflow.steps, "Steps", catalog, context)
        on_failure_steps = self._plan_steps(workflow.on_failure_steps, "OnFailureSteps", catalog, context)

        missing = []
        for step in steps + on_failure_steps:
            if not step.is_applicable:
                continue
            lacking = find_missing_capabilities(step.requires_capabilities, advertised)
            if lacking:
                missing.append((step.name, lacking))
        if missing:
            raise MissingCapabilities(missing)

        warnings = self._collect_warnings(workflow, advertised)
        for warning in warnings:
            logger.warning(warning)

        plan = Plan(
            correlation_id=request.correlation_id,
            workflow_name=workflow.name,
            lifecycle_event=workflow.lifecycle_event,
            request=request,
            steps=steps,
            on_failure_steps=on_failure_steps,
            providers=dict(providers) if providers is not None else None,
            actions=tuple(
                {
                    "Step": step.name,
                    "Type": step.type,
                    "RequiresCapabilities": list(step.requires_capabilities),
                }
                for step in steps
                if step.is_applicable
            ),
            warnings=tuple(warnings),
        )

        logger.info(
            f"Created plan for '{workflow.name}': {len(steps)} steps "
            f"({len(plan.actions)} planned), {len(on_failure_steps)} OnFailure steps"
        )
        return plan

    def _plan_steps(
        self,
        definitions: Sequence[StepDefinition],
        section: str,
        catalog: Catalog,
        context: Dict[str, Any],
    ) -> Tuple[PlanStep, ...]:
        planned: List[PlanStep] = []

        for index, definition in enumerate(definitions):
            where = f"Workflow.{section}[{index}]"
            requires = required_capabilities(catalog, definition.type, definition.name)
            applicable = is_applicable(definition.condition, context, f"{where}.Condition")

            if applicable:
                inputs = resolve_templates(
                    definition.with_, {"Request": context["Request"]}, f"{where}.With"
                )
            else:
                inputs = copy.deepcopy(definition.with_)
                logger.debug(f"Step '{definition.name}' is not applicable")

            planned.append(
                PlanStep(
                    name=definition.name,
                    type=definition.type,
                    description=definition.description,
                    condition=copy.deepcopy(definition.condition),
                    with_=inputs,
                    retry_profile=definition.retry_profile,
                    expected_state=copy.deepcopy(definition.expected_state),
                    status=PlanStepStatus.PLANNED if applicable else PlanStepStatus.NOT_APPLICABLE,
                    requires_capabilities=requires if applicable else (),
                )
            )

        return tuple(planned)

    @staticmethod
    def _collect_warnings(workflow: WorkflowDefinition, advertised: Mapping[str, Tuple[str, ...]]) -> List[str]:
        warnings = []
        if not workflow.steps:
            warnings.append(f"Workflow '{workflow.name}' defines no steps.")
        for alias, capabilities in advertised.items():
            if not capabilities:
                warnings.append(f"Provider '{alias}' advertises no capabilities.")
        return warnings


def new_plan(
    workflow: Any,
    request: Any,
    providers: Optional[Mapping[str, Any]] = None,
    step_packs: Optional[Iterable[StepPack]] = None,
) -> Plan:
    """Convenience wrapper: ``Planner(step_packs).plan(workflow, request, providers)``."""
    return Planner(step_packs).plan(workflow, request, providers)
