"""
Declarative step conditions.

Supported shapes:

    {"Equals":    {"Path": "Plan.LifecycleEvent", "Value": "Joiner"}}
    {"NotEquals": {"Path": "...", "Value": ...}}
    {"Exists":    {"Path": "Request.DesiredState.Mailbox"}}   (or "Exists": "<path>")
    {"In":        {"Path": "...", "Values": [...]}}
    {"All": [<condition>, ...]}, {"Any": [...]}, {"None": [...]}

Conditions are validated structurally before evaluation; a malformed shape
fails planning. Evaluation happens once, at planning time.
"""

import logging
from typing import Any, Mapping, Optional, Tuple

from ..errors import ValidationError

logger = logging.getLogger(__name__)

COMPARISONS = ("Equals", "NotEquals", "Exists", "In")
LOGICAL = ("All", "Any", "None")

MISSING = object()


def resolve_path(context: Mapping[str, Any], path: str) -> Any:
    """
    Resolve a dotted path (``Request.DesiredState.Department``) against a context.

    Returns:
        The value found, or a sentinel when any segment is missing
    """
    current: Any = context
    for segment in path.split("."):
        if isinstance(current, Mapping):
            if segment not in current:
                return MISSING
            current = current[segment]
        elif isinstance(current, (list, tuple)) and segment.isdigit():
            index = int(segment)
            if index >= len(current):
                return MISSING
            current = current[index]
        else:
            return MISSING
    return current


def path_exists(context: Mapping[str, Any], path: str) -> bool:
    value = resolve_path(context, path)
    return value is not MISSING and value is not None


def _validate_path(path: Any, where: str, roots: Optional[Tuple[str, ...]]) -> None:
    if not isinstance(path, str) or not path.strip() or any(not s for s in path.split(".")):
        raise ValidationError(f"Condition at {where} needs a dotted Path string", path=where)
    if roots and path.split(".")[0] not in roots:
        raise ValidationError(
            f"Condition path '{path}' at {where} must start with one of: {', '.join(roots)}",
            path=where,
        )


def validate_condition(condition: Any, where: str = "Condition",
                       roots: Optional[Tuple[str, ...]] = ("Plan", "Request")) -> None:
    """
    Structurally validate a condition.

    Args:
        condition: Condition mapping (None is always valid)
        where: Location used in error messages
        roots: Allowed first path segments

    Raises:
        ValidationError: If the condition shape is malformed
    """
    if condition is None:
        return
    if not isinstance(condition, Mapping) or len(condition) != 1:
        raise ValidationError(
            f"Condition at {where} must be a mapping with exactly one operator", path=where
        )

    operator, operand = next(iter(condition.items()))
    here = f"{where}.{operator}"

    if operator in LOGICAL:
        if not isinstance(operand, (list, tuple)) or not operand:
            raise ValidationError(f"Condition at {here} must be a non-empty list", path=here)
        for index, child in enumerate(operand):
            validate_condition(child, f"{here}[{index}]", roots)
        return

    if operator == "Exists":
        if isinstance(operand, str):
            _validate_path(operand, here, roots)
            return
        if not isinstance(operand, Mapping) or set(operand) != {"Path"}:
            raise ValidationError(f"Condition at {here} must be a path or {{Path}}", path=here)
        _validate_path(operand["Path"], here, roots)
        return

    if operator in ("Equals", "NotEquals"):
        if not isinstance(operand, Mapping) or set(operand) != {"Path", "Value"}:
            raise ValidationError(f"Condition at {here} requires exactly Path and Value", path=here)
        _validate_path(operand["Path"], here, roots)
        return

    if operator == "In":
        if not isinstance(operand, Mapping) or set(operand) != {"Path", "Values"}:
            raise ValidationError(f"Condition at {here} requires exactly Path and Values", path=here)
        _validate_path(operand["Path"], here, roots)
        if not isinstance(operand["Values"], (list, tuple)):
            raise ValidationError(f"Condition at {here}.Values must be a list", path=f"{here}.Values")
        return

    raise ValidationError(
        f"Unknown condition operator '{operator}' at {where}; "
        f"expected one of {', '.join(COMPARISONS + LOGICAL)}",
        path=where,
    )


def _evaluate(condition: Mapping[str, Any], context: Mapping[str, Any]) -> bool:
    operator, operand = next(iter(condition.items()))

    if operator == "All":
        return all(_evaluate(child, context) for child in operand)
    if operator == "Any":
        return any(_evaluate(child, context) for child in operand)
    if operator == "None":
        return not any(_evaluate(child, context) for child in operand)

    if operator == "Exists":
        path = operand if isinstance(operand, str) else operand["Path"]
        return path_exists(context, path)

    actual = resolve_path(context, operand["Path"])
    if operator == "Equals":
        return actual is not MISSING and actual == operand["Value"]
    if operator == "NotEquals":
        return actual is MISSING or actual != operand["Value"]
    # In
    return actual is not MISSING and actual in operand["Values"]


def is_applicable(condition: Optional[Mapping[str, Any]], context: Mapping[str, Any],
                  where: str = "Condition") -> bool:
    """
    Decide whether a step applies.

    A step without a condition is always applicable.

    Raises:
        ValidationError: If the condition is malformed
    """
    if condition is None:
        return True
    validate_condition(condition, where)
    result = _evaluate(condition, context)
    logger.debug(f"Condition at {where} evaluated to {result}")
    return result
