"""
Redaction of sensitive values at output boundaries.

Produces deep copies in which values under deny-listed keys, credential
types, auth-session brokers and executable values are replaced by a
marker. The input is never mutated and the copy shares no mutable
sub-structure with it.
"""

import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, FrozenSet, Iterable, Mapping, Optional, Set
from uuid import UUID

from pydantic import BaseModel, SecretBytes, SecretStr

from .validator import is_trusted_carrier, object_attributes

logger = logging.getLogger(__name__)

REDACTION_MARKER = "[REDACTED]"

# Exact, case-sensitive key matches only.
DEFAULT_REDACTED_KEYS: FrozenSet[str] = frozenset({
    "password",
    "token",
    "accessToken",
    "refreshToken",
    "clientSecret",
    "apiKey",
    "AccountPassword",
    "AccountPasswordAsPlainText",
    "GeneratedAccountPasswordPlainText",
    "GeneratedAccountPasswordProtected",
})

_IMMUTABLE = (str, bytes, int, float, bool, Decimal, UUID, date, datetime, time, timedelta, Enum)
_SECURE_TYPES = (SecretStr, SecretBytes)


def is_secure_value(value: Any) -> bool:
    """Return True for credential/secure-string values."""
    return isinstance(value, _SECURE_TYPES)


class Redactor:
    """
    Deep-copying redactor.

    Back-edges (a node revisited while it is still on the current traversal
    path) are replaced by the marker, so the output never contains cycles.
    """

    def __init__(self, keys: Optional[Iterable[str]] = None, marker: str = REDACTION_MARKER):
        self.keys = frozenset(keys) if keys is not None else DEFAULT_REDACTED_KEYS
        self.marker = marker

    def redact(self, value: Any) -> Any:
        return self._copy(value, set())

    def _copy(self, value: Any, on_path: Set[int]) -> Any:
        if value is None or isinstance(value, _IMMUTABLE):
            return value
        # Brokers hold live sessions, so none of their state is copied out.
        if is_secure_value(value) or is_trusted_carrier(value) or callable(value):
            return self.marker

        marker = id(value)
        if marker in on_path:
            return self.marker
        on_path.add(marker)
        try:
            if isinstance(value, BaseModel):
                return self._copy_mapping(
                    {
                        (field.alias or name): getattr(value, name)
                        for name, field in type(value).model_fields.items()
                    },
                    on_path,
                )
            if isinstance(value, Mapping):
                return self._copy_mapping(value, on_path)
            if isinstance(value, list):
                return [self._copy(item, on_path) for item in value]
            if isinstance(value, tuple):
                return tuple(self._copy(item, on_path) for item in value)
            if isinstance(value, (set, frozenset)):
                return type(value)(self._copy(item, on_path) for item in value)
            attributes = object_attributes(value)
            if attributes or hasattr(value, "__dict__"):
                snapshot = {k: v for k, v in attributes.items() if not k.startswith("_")}
                return self._copy_mapping(snapshot, on_path)
            return repr(value)
        finally:
            on_path.discard(marker)

    def _copy_mapping(self, mapping: Any, on_path: Set[int]) -> dict:
        copied = {}
        for key, item in mapping.items():
            if isinstance(key, str) and key in self.keys:
                copied[key] = self.marker
            else:
                copied[key] = self._copy(item, on_path)
        return copied


_default_redactor = Redactor()


def redact(value: Any, marker: str = REDACTION_MARKER, keys: Optional[Iterable[str]] = None) -> Any:
    """
    Return a redacted deep copy of ``value``.

    Args:
        value: Arbitrary data (maps, sequences, models, plain objects)
        marker: Replacement for sensitive values
        keys: Deny-list of exact key names; defaults to DEFAULT_REDACTED_KEYS

    Returns:
        A new structure safe to hand across an output boundary
    """
    if keys is None and marker == REDACTION_MARKER:
        return _default_redactor.redact(value)
    return Redactor(keys=keys, marker=marker).redact(value)
