"""
Template placeholder resolution for step inputs.

Placeholders look like ``{{Request.DesiredState.Department}}`` and are
resolved against the request only. A string consisting of exactly one
placeholder takes the referenced value as-is (keeping its type); otherwise
placeholders are interpolated as text. Missing paths fail planning.
"""

import copy
import re
from typing import Any, Mapping

from ..errors import TemplateResolutionError
from .conditions import MISSING, resolve_path

PLACEHOLDER = re.compile(r"\{\{\s*([^{}]*?)\s*\}\}")
TEMPLATE_ROOT = "Request"

_SCALAR_TYPES = (str, int, float, bool)


def _lookup(expression: str, context: Mapping[str, Any], where: str) -> Any:
    segments = expression.split(".")
    if segments[0] != TEMPLATE_ROOT or len(segments) < 2 or any(not s for s in segments):
        raise TemplateResolutionError(
            f"Template '{{{{{expression}}}}}' at {where} must reference a {TEMPLATE_ROOT}.* path",
            path=where,
        )

    value = resolve_path(context, expression)
    if value is MISSING or value is None:
        raise TemplateResolutionError(
            f"Template '{{{{{expression}}}}}' at {where} could not be resolved: "
            "the path does not exist in the request",
            path=where,
        )
    return copy.deepcopy(value)


def resolve_string(template: str, context: Mapping[str, Any], where: str) -> Any:
    """Resolve placeholders in one string."""
    whole = PLACEHOLDER.fullmatch(template)
    if whole:
        return _lookup(whole.group(1), context, where)

    def substitute(match):
        value = _lookup(match.group(1), context, where)
        if not isinstance(value, _SCALAR_TYPES):
            raise TemplateResolutionError(
                f"Template '{match.group(0)}' at {where} resolves to a non-scalar value "
                "and cannot be embedded in text",
                path=where,
            )
        return str(value)

    return PLACEHOLDER.sub(substitute, template)


def resolve_templates(value: Any, context: Mapping[str, Any], where: str = "With") -> Any:
    """
    Return a copy of ``value`` with all placeholders resolved.

    Args:
        value: Step input structure (maps, lists, scalars)
        context: {"Request": {...}} data
        where: Location used in error messages

    Raises:
        TemplateResolutionError: If a placeholder cannot be resolved
    """
    if isinstance(value, str):
        return resolve_string(value, context, where) if "{{" in value else value
    if isinstance(value, Mapping):
        return {k: resolve_templates(v, context, f"{where}.{k}") for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_templates(v, context, f"{where}[{i}]") for i, v in enumerate(value)]
    if isinstance(value, tuple):
        return tuple(resolve_templates(v, context, f"{where}[{i}]") for i, v in enumerate(value))
    return value
