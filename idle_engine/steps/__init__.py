"""
Steps Package for the IdLE engine.

This package provides step packs (step-type metadata plus named handler
functions), the handler registration table, the always-loaded core pack
and the common identity/entitlement pack.
"""

from .common import COMMON_PACK_NAME, load_common_step_pack
from .core import ACQUIRE_AUTH_SESSION, CORE_PACK_NAME, CORE_STEP_PACK, EMIT_EVENT
from .registry import StepHandlerRegistry, StepPack, call_handler, validate_handler

__all__ = [
    "StepPack",
    "StepHandlerRegistry",
    "call_handler",
    "validate_handler",
    "CORE_STEP_PACK",
    "CORE_PACK_NAME",
    "EMIT_EVENT",
    "ACQUIRE_AUTH_SESSION",
    "COMMON_PACK_NAME",
    "load_common_step_pack",
]
