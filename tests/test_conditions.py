"""
Tests for declarative conditions and template resolution.
"""

import pytest

from idle_engine.engine.conditions import is_applicable, resolve_path, validate_condition, MISSING
from idle_engine.engine.templates import resolve_templates
from idle_engine.errors import TemplateResolutionError, ValidationError


@pytest.fixture
def context():
    return {
        "Plan": {"LifecycleEvent": "Joiner", "WorkflowName": "Joiner - Standard"},
        "Request": {
            "Type": "Joiner",
            "Actor": None,
            "IdentityKeys": {"EmployeeId": "E1"},
            "DesiredState": {"Department": "Engineering", "Groups": ["staff", "eng"]},
        },
    }


class TestEvaluation:
    """Condition evaluation against plan and request data."""

    def test_no_condition_is_applicable(self, context):
        assert is_applicable(None, context) is True

    @pytest.mark.parametrize("condition, expected", [
        ({"Equals": {"Path": "Plan.LifecycleEvent", "Value": "Joiner"}}, True),
        ({"Equals": {"Path": "Plan.LifecycleEvent", "Value": "Leaver"}}, False),
        ({"Equals": {"Path": "Request.DesiredState.Missing", "Value": None}}, False),
        ({"NotEquals": {"Path": "Request.DesiredState.Department", "Value": "Sales"}}, True),
        ({"NotEquals": {"Path": "Request.DesiredState.Missing", "Value": "x"}}, True),
        ({"Exists": {"Path": "Request.DesiredState.Department"}}, True),
        ({"Exists": "Request.DesiredState.Manager"}, False),
        ({"Exists": "Request.Actor"}, False),
        ({"In": {"Path": "Request.DesiredState.Department", "Values": ["Engineering", "IT"]}}, True),
        ({"In": {"Path": "Request.DesiredState.Groups.1", "Values": ["eng"]}}, True),
    ])
    def test_comparisons(self, context, condition, expected):
        assert is_applicable(condition, context) is expected

    def test_logical_wrappers(self, context):
        joiner = {"Equals": {"Path": "Request.Type", "Value": "Joiner"}}
        sales = {"Equals": {"Path": "Request.DesiredState.Department", "Value": "Sales"}}

        assert is_applicable({"All": [joiner, {"Exists": "Request.IdentityKeys.EmployeeId"}]}, context)
        assert not is_applicable({"All": [joiner, sales]}, context)
        assert is_applicable({"Any": [sales, joiner]}, context)
        assert is_applicable({"None": [sales]}, context)
        assert not is_applicable({"None": [sales, joiner]}, context)

    def test_resolve_path(self, context):
        assert resolve_path(context, "Request.IdentityKeys.EmployeeId") == "E1"
        assert resolve_path(context, "Request.Nope.Deeper") is MISSING
        assert resolve_path(context, "Request.DesiredState.Groups.5") is MISSING


class TestValidation:
    """Malformed conditions fail closed."""

    @pytest.mark.parametrize("condition", [
        {},
        {"Equals": {"Path": "Request.Type", "Value": 1}, "Exists": "Request.Type"},
        {"Equals": {"Path": "Request.Type"}},
        {"Equals": {"Path": "", "Value": 1}},
        {"Equals": {"Path": "Request..Type", "Value": 1}},
        {"In": {"Path": "Request.Type", "Values": "Joiner"}},
        {"Exists": {"Path": "Request.Type", "Extra": True}},
        {"All": []},
        {"Any": {"Equals": {"Path": "Request.Type", "Value": 1}}},
        {"Matches": {"Path": "Request.Type", "Value": ".*"}},
        ["Equals"],
    ])
    def test_malformed(self, condition):
        with pytest.raises(ValidationError):
            validate_condition(condition)

    def test_path_root_restricted(self):
        with pytest.raises(ValidationError, match="must start with one of"):
            validate_condition({"Exists": "Providers.Identity"})

    def test_nested_error_path(self):
        condition = {"All": [{"Exists": "Request.Type"}, {"Equals": {"Path": "Request.Type"}}]}

        with pytest.raises(ValidationError) as exc_info:
            validate_condition(condition, "Workflow.Steps[0].Condition")

        assert exc_info.value.path == "Workflow.Steps[0].Condition.All[1].Equals"


class TestTemplates:
    """{{Request.*}} placeholder resolution."""

    def test_resolution_copies_values(self, context):
        resolved = resolve_templates({"Groups": "{{Request.DesiredState.Groups}}"}, context)
        resolved["Groups"].append("new")

        assert context["Request"]["DesiredState"]["Groups"] == ["staff", "eng"]

    def test_plain_values_untouched(self, context):
        value = {"Count": 3, "Flag": True, "Text": "no placeholders", "Empty": None}

        assert resolve_templates(value, context) == value

    def test_multiple_placeholders(self, context):
        text = "{{Request.Type}}:{{Request.IdentityKeys.EmployeeId}}"

        assert resolve_templates(text, context) == "Joiner:E1"

    def test_none_value_is_unresolvable(self, context):
        with pytest.raises(TemplateResolutionError):
            resolve_templates("{{Request.Actor}}", context)
