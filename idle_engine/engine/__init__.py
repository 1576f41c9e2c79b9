"""
Planning and Execution Engine Package.

This package provides the planner, the executor state machine and the
supporting capability, condition, template and retry components.
"""

from .capability_resolver import CapabilityResolver
from .context import StepContext
from .executor import Executor, invoke_plan
from .planner import Planner, new_plan

__all__ = [
    "CapabilityResolver",
    "StepContext",
    "Executor",
    "invoke_plan",
    "Planner",
    "new_plan",
]
