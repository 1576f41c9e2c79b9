"""
Tests for the mock provider, auth session brokers and the common step pack.
"""

import pytest

from idle_engine.engine import Executor, Planner
from idle_engine.errors import AuthSessionUnavailable, MissingCapabilities, PermanentProviderError
from idle_engine.models import ExecutionStatus, OnFailureStatus, StepStatus
from idle_engine.providers import MockIdentityProvider, ProviderResult, SessionMapBroker
from idle_engine.steps import load_common_step_pack
from idle_engine.workflows import load_request, load_workflow

from .helpers import request, step, workflow


class TestMockIdentityProvider:
    """Idempotent in-memory provider operations."""

    @pytest.fixture
    def provider(self):
        return MockIdentityProvider(identities={"E1": {"DisplayName": "Ada"}})

    def test_capabilities(self, provider):
        assert "IdLE.Identity.Disable" in provider.get_capabilities()
        assert MockIdentityProvider(capabilities=["X.Y"]).get_capabilities() == ["X.Y"]

    def test_create_is_idempotent(self, provider):
        first = provider.create_identity("E2", {"DisplayName": "Grace"})
        second = provider.create_identity("E2", {"DisplayName": "Grace"})

        assert isinstance(first, ProviderResult)
        assert first.changed is True
        assert second.changed is False

    def test_ensure_attribute(self, provider):
        assert provider.ensure_attribute("E1", "Department", "IT").changed is True
        assert provider.ensure_attribute("E1", "Department", "IT").changed is False
        assert provider.get_identity("E1").data == {"DisplayName": "Ada", "Department": "IT"}

    def test_disable_enable(self, provider):
        assert provider.disable_identity("E1").changed is True
        assert provider.disable_identity("E1").changed is False
        assert provider.enable_identity("E1").changed is True
        assert provider.enable_identity("E1").changed is False

    def test_entitlements(self, provider):
        group = {"Kind": "Group", "Id": "all-staff"}

        assert provider.grant_entitlement("E1", group).changed is True
        assert provider.grant_entitlement("E1", {"Id": "all-staff"}).changed is False
        assert provider.list_entitlements("E1").data == [group]
        assert provider.revoke_entitlement("E1", group).changed is True
        assert provider.revoke_entitlement("E1", group).changed is False

    def test_missing_identity(self, provider):
        with pytest.raises(PermanentProviderError, match="E404"):
            provider.disable_identity("E404")

    def test_result_to_dict(self):
        result = ProviderResult(True, "E1", "DisableIdentity")

        assert result.to_dict() == {
            "Changed": True,
            "IdentityKey": "E1",
            "Operation": "DisableIdentity",
            "Message": "",
        }


class TestSessionMapBroker:
    """Session selection by name and options."""

    def test_first_match_wins(self):
        broker = SessionMapBroker([
            ({"Name": "Directory", "Role": "Admin"}, "admin"),
            ({"Name": "Directory"}, "reader"),
        ])

        assert broker.acquire_auth_session("Directory", {"Role": "Admin"}) == "admin"
        assert broker.acquire_auth_session("Directory", {"Role": "Tier2"}) == "reader"

    def test_default_session(self):
        broker = SessionMapBroker([({"Name": "Mail"}, "mail")], default_session="fallback")

        assert broker.acquire_auth_session("Directory", {}) == "fallback"

    def test_no_match_without_default(self):
        with pytest.raises(AuthSessionUnavailable):
            SessionMapBroker().acquire_auth_session("Directory", {})

    def test_factory(self):
        broker = SessionMapBroker(default_session="token-ref", factory=session_factory)

        assert broker.acquire_auth_session("Directory", {"Actor": "ada"}) == ("token-ref", "ada")


def session_factory(session, options):
    return (session, options.get("Actor"))


@pytest.mark.integration
class TestCommonStepPack:
    """End-to-end lifecycle runs with the common pack and the mock provider."""

    @pytest.fixture
    def packs(self):
        return [load_common_step_pack()]

    def test_joiner_from_files(self, packs, fixtures_dir):
        provider = MockIdentityProvider()
        wf = load_workflow(fixtures_dir / "joiner_workflow.yaml")
        req = load_request(fixtures_dir / "joiner_request.yaml")

        plan = Planner(packs).plan(wf, req, {"Identity": provider})
        result = Executor(packs).invoke(plan)

        assert result.status == ExecutionStatus.COMPLETED
        identity = provider.get_mock_state()["identities"]["E1001"]
        assert identity["Attributes"] == {"DisplayName": "Ada Lovelace", "Department": "Engineering"}
        assert identity["Entitlements"] == [{"Kind": "Group", "Id": "all-staff"}]

    def test_rerun_is_idempotent(self, packs, fixtures_dir):
        provider = MockIdentityProvider()
        wf = load_workflow(fixtures_dir / "joiner_workflow.yaml")
        req = load_request(fixtures_dir / "joiner_request.yaml")
        plan = Planner(packs).plan(wf, req, {"Identity": provider})
        executor = Executor(packs)

        executor.invoke(plan)
        second = executor.invoke(plan)

        changed = [e.data.get("Changed") for e in second.events if e.type.value == "StepCompleted"]
        assert changed == [False, False, False]

    def test_leaver_with_cleanup(self, packs):
        provider = MockIdentityProvider(identities={"E1": {"DisplayName": "Ada"}})
        wf = workflow(
            [
                step("Revoke staff", "IdLE.Entitlement.Revoke",
                     With={"IdentityKey": "{{Request.IdentityKeys.EmployeeId}}", "Entitlement": {"Id": "staff"}}),
                step("Disable", "IdLE.Identity.Disable", With={"IdentityKey": "E404"}),
            ],
            on_failure=[
                step("Re-enable", "IdLE.Identity.Enable", With={"IdentityKey": "E1"}),
            ],
            event="Leaver",
        )

        plan = Planner(packs).plan(wf, request(Type="Leaver"), {"Identity": provider})
        result = Executor(packs).invoke(plan)

        assert result.status == ExecutionStatus.FAILED
        assert [s.status for s in result.steps] == [StepStatus.COMPLETED, StepStatus.FAILED]
        assert "E404" in result.steps[1].error
        assert result.on_failure.status == OnFailureStatus.COMPLETED

    def test_missing_input_fails_step(self, packs):
        provider = MockIdentityProvider()
        plan = Planner(packs).plan(
            workflow([step("Create", "IdLE.Identity.Create")]), request(), {"Identity": provider}
        )

        result = Executor(packs).invoke(plan)

        assert result.status == ExecutionStatus.FAILED
        assert "IdentityKey" in result.steps[0].error

    def test_provider_alias_input(self, packs):
        provider = MockIdentityProvider()
        plan = Planner(packs).plan(
            workflow([step("Create", "IdLE.Identity.Create", With={"IdentityKey": "E9", "Provider": "Target"})]),
            request(),
            {"Target": provider},
        )

        result = Executor(packs).invoke(plan)

        assert result.status == ExecutionStatus.COMPLETED
        assert "E9" in provider.identities

    def test_capability_gating_with_restricted_provider(self, packs):
        provider = MockIdentityProvider(capabilities=["IdLE.Identity.Create"])

        with pytest.raises(MissingCapabilities) as exc_info:
            Planner(packs).plan(
                workflow([step("Disable", "IdLE.Identity.Disable", With={"IdentityKey": "E1"})]),
                request(),
                {"Identity": provider},
            )

        assert exc_info.value.capabilities == ["IdLE.Identity.Disable"]
