"""
Security Package.

Exports the no-callable validator and the redaction utility that guard
every trust and output boundary of the engine.
"""

from .redaction import DEFAULT_REDACTED_KEYS, REDACTION_MARKER, Redactor, redact
from .validator import TrustedCallableCarrier, assert_no_callables, validate_event_sink

__all__ = [
    "DEFAULT_REDACTED_KEYS",
    "REDACTION_MARKER",
    "Redactor",
    "redact",
    "TrustedCallableCarrier",
    "assert_no_callables",
    "validate_event_sink",
]
