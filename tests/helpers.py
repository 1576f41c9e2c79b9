"""
Shared step handlers, providers and builders for the test suite.

Handlers live at module level so the handler registry accepts them.
"""

from typing import Any, Dict, List, Optional

from idle_engine.providers import AuthSessionBroker, BaseProvider
from idle_engine.steps import StepPack

CORRELATION_ID = "11111111-1111-1111-1111-111111111111"


def noop_step(context, step):
    return {"Changed": False}


def scripted_step(context, step):
    return context.get_provider("Script").run(step.name)


def mutating_step(context, step):
    step.with_["Injected"] = True
    return None


def legacy_step(step):
    return None


class ScriptedProvider(BaseProvider):
    """Provider whose per-step outcomes are scripted up front."""

    def __init__(self, outcomes: Optional[Dict[str, List[Any]]] = None, capabilities=("Test.Script",)):
        super().__init__("Script")
        self.outcomes = {name: list(queue) for name, queue in (outcomes or {}).items()}
        self.capabilities = list(capabilities)
        self.calls: List[str] = []

    def get_capabilities(self) -> List[str]:
        return list(self.capabilities)

    def run(self, step_name: str) -> Any:
        self.calls.append(step_name)
        queue = self.outcomes.get(step_name)
        outcome = queue.pop(0) if queue else {"Changed": True}
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RecordingBroker(AuthSessionBroker):
    """Broker that records every request and hands out a fixed session."""

    def __init__(self, session: Any = "session"):
        self.session = session
        self.requests: List[tuple] = []

    def acquire_auth_session(self, name: str, options: Dict[str, Any]) -> Any:
        self.requests.append((name, options))
        return self.session


class RecordingSink:
    def __init__(self):
        self.events = []

    def write_event(self, event):
        self.events.append(event)


class FailingSink(RecordingSink):
    """Sink that refuses one event type."""

    def __init__(self, fail_on):
        super().__init__()
        self.fail_on = fail_on

    def write_event(self, event):
        if event.type == self.fail_on:
            raise OSError("audit volume is full")
        super().write_event(event)


TEST_PACK = StepPack(
    "Tests.Steps",
    metadata={
        "Test.Noop": {"RequiredCapabilities": [], "Handler": "noop_step"},
        "Test.Scripted": {"RequiredCapabilities": ["Test.Script"], "Handler": "scripted_step"},
        "Test.Mutating": {"RequiredCapabilities": [], "Handler": "mutating_step"},
        "Test.Legacy": {"Handler": "legacy_step"},
    },
    handlers=[noop_step, scripted_step, mutating_step, legacy_step],
)


def step(name: str, step_type: str = "Test.Noop", **extra) -> Dict[str, Any]:
    definition = {"Name": name, "Type": step_type}
    definition.update(extra)
    return definition


def workflow(steps, on_failure=(), event: str = "Joiner", name: str = "Test workflow") -> Dict[str, Any]:
    return {
        "Name": name,
        "LifecycleEvent": event,
        "Steps": list(steps),
        "OnFailureSteps": list(on_failure),
    }


def request(**overrides) -> Dict[str, Any]:
    data = {
        "Type": "Joiner",
        "CorrelationId": CORRELATION_ID,
        "Actor": "tester",
        "IdentityKeys": {"EmployeeId": "E1"},
        "DesiredState": {"Department": "Engineering", "Groups": ["staff", "eng"]},
    }
    data.update(overrides)
    return data
