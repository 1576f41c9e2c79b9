"""
No-callable validator for data crossing a trust boundary.

Plans, provider maps, execution options and auth-session options must be
pure data. Any executable value found at any depth is a SecurityViolation
naming the dotted path of the offending field.
"""

import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Set
from uuid import UUID

from pydantic import BaseModel

from ..errors import SecurityViolation, ValidationError

logger = logging.getLogger(__name__)

_SCALARS = (str, bytes, int, float, bool, Decimal, UUID, date, datetime, time, timedelta, Enum)


class TrustedCallableCarrier:
    """
    Type tag for the one sanctioned carrier of host-supplied executable logic.

    Instances of subclasses are not traversed by the validator. Exemption is
    by type only, so look-alike objects exposing the same methods are still
    validated.
    """

    __slots__ = ()


def is_trusted_carrier(value: Any) -> bool:
    return isinstance(value, TrustedCallableCarrier)


def object_attributes(value: Any) -> Dict[str, Any]:
    """
    Instance attributes of a plain object, from ``__dict__`` and ``__slots__``.

    Unset slots are skipped.
    """
    attributes = dict(vars(value)) if hasattr(value, "__dict__") else {}
    for klass in type(value).__mro__:
        slots = klass.__dict__.get("__slots__", ())
        if isinstance(slots, str):
            slots = (slots,)
        for slot in slots:
            if slot in ("__dict__", "__weakref__"):
                continue
            name = slot
            if slot.startswith("__") and not slot.endswith("__"):
                name = f"_{klass.__name__.lstrip('_')}{slot}"
            if name in attributes:
                continue
            try:
                attributes[name] = getattr(value, name)
            except AttributeError:
                continue
    return attributes


def _child_path(path: str, key: Any) -> str:
    return f"{path}.{key}" if path else str(key)


def _check(value: Any, path: str, visiting: Set[int]) -> None:
    if value is None or isinstance(value, _SCALARS):
        return

    if is_trusted_carrier(value):
        logger.debug(f"Skipping trusted callable carrier at {path}")
        return

    # Classes are callable too, so this also rejects type objects.
    if callable(value):
        raise SecurityViolation(path)

    marker = id(value)
    if marker in visiting:
        return
    visiting.add(marker)
    try:
        if isinstance(value, BaseModel):
            for name, field in type(value).model_fields.items():
                _check(getattr(value, name), _child_path(path, field.alias or name), visiting)
        elif isinstance(value, Mapping):
            for key, item in value.items():
                if callable(key) and not isinstance(key, _SCALARS):
                    raise SecurityViolation(_child_path(path, repr(key)))
                _check(item, _child_path(path, key), visiting)
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                _check(item, f"{path}[{index}]", visiting)
        elif isinstance(value, (set, frozenset)):
            for index, item in enumerate(sorted(value, key=repr)):
                _check(item, f"{path}[{index}]", visiting)
        else:
            for key, item in object_attributes(value).items():
                _check(item, _child_path(path, key), visiting)
    finally:
        visiting.discard(marker)


def assert_no_callables(value: Any, path: str = "") -> None:
    """
    Recursively reject embedded executable values.

    Args:
        value: Data to inspect (maps, sequences, models, plain objects)
        path: Dotted path of ``value``, used in error messages

    Raises:
        SecurityViolation: If an executable value is found
    """
    _check(value, path, set())


def validate_event_sink(sink: Optional[Any], path: str = "EventSink") -> None:
    """
    Reject bare callables used as event sinks.

    A sink must be an object exposing ``write_event``.

    Raises:
        SecurityViolation: If the sink itself is a callable
        ValidationError: If the sink lacks a write_event method
    """
    if sink is None:
        return
    if callable(sink):
        raise SecurityViolation(
            path, f"Security violation: '{path}' is a bare callable; supply an object with write_event()."
        )
    if not callable(getattr(sink, "write_event", None)):
        raise ValidationError(f"{path} must expose a write_event(event) method", path=path)
