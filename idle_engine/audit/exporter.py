"""
Plan Export Module.

Serializes a Plan into the schema-versioned, secret-free JSON contract
artifact. Output is deterministic: sorted keys, UTF-8, LF line endings,
two-space indentation. The engine version is omitted on purpose so the same
Plan exports byte-identically across engine builds.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..models import Plan, PlanStep
from ..security.redaction import redact

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"
ENGINE_NAME = "IdLE"
EXPORT_MODE = "Plan"


def _export_step(step: PlanStep, prefix: str, index: int) -> Dict[str, Any]:
    provider = step.with_.get("Provider")
    return {
        "id": f"{prefix}-{index}",
        "name": step.name,
        "stepType": step.type,
        "provider": provider if isinstance(provider, str) else None,
        "condition": redact(step.condition) if step.condition is not None else None,
        "inputs": redact(step.with_),
        "expectedState": redact(step.expected_state) if step.expected_state is not None else None,
        "status": step.status.value,
    }


def _export_steps(steps, prefix: str) -> List[Dict[str, Any]]:
    return [_export_step(step, prefix, index) for index, step in enumerate(steps, start=1)]


def plan_to_export_document(plan: Plan) -> Dict[str, Any]:
    """
    Build the export document for a plan.

    Args:
        plan: Plan to export

    Returns:
        Plain dict ready for JSON serialization
    """
    request = plan.request
    request_input = {
        "IdentityKeys": request.identity_keys,
        "DesiredState": request.desired_state,
    }
    if request.changes is not None:
        request_input["Changes"] = request.changes

    return {
        "schemaVersion": SCHEMA_VERSION,
        "engine": {"name": ENGINE_NAME},
        "request": {
            "type": request.type,
            "correlationId": request.correlation_id,
            "actor": request.actor,
            "input": redact(request_input),
        },
        "plan": {
            "id": plan.correlation_id,
            "mode": EXPORT_MODE,
            "steps": _export_steps(plan.steps, "step"),
            "onFailureSteps": _export_steps(plan.on_failure_steps, "onfailure"),
        },
        "metadata": {
            "workflowName": plan.workflow_name,
            "lifecycleEvent": plan.lifecycle_event,
            "warnings": list(plan.warnings),
        },
    }


def export_plan(plan: Plan) -> str:
    """
    Serialize a plan to its canonical JSON form.

    Returns:
        Pretty-printed JSON text ending with a single LF
    """
    if not isinstance(plan, Plan):
        raise TypeError(f"export_plan expects a Plan, got {type(plan).__name__}")

    document = plan_to_export_document(plan)
    return json.dumps(document, sort_keys=True, indent=2, ensure_ascii=False, default=str) + "\n"


def export_plan_to_file(plan: Plan, path: Union[str, Path], overwrite: Optional[bool] = True) -> Path:
    """
    Write a plan export to disk as UTF-8 with LF line endings.

    Args:
        plan: Plan to export
        path: Target file
        overwrite: Replace an existing file

    Returns:
        Path of the written file
    """
    target = Path(path)
    if target.exists() and not overwrite:
        raise FileExistsError(f"Export target already exists: {target}")

    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w", encoding="utf-8", newline="\n") as f:
        f.write(export_plan(plan))

    logger.info(f"Exported plan {plan.correlation_id} to {target}")
    return target
