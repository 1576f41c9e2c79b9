"""
Integration tests for the loaders and the idlectl CLI.
"""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from idle_engine.cli.idlectl import IdleController, cli
from idle_engine.errors import ValidationError
from idle_engine.workflows import load_document, load_execution_options, load_workflow


@pytest.mark.integration
class TestLoaders:
    """YAML/JSON document loading."""

    def test_load_workflow_yaml(self, fixtures_dir):
        wf = load_workflow(fixtures_dir / "joiner_workflow.yaml")

        assert wf.name == "Joiner - Standard"
        assert [s.name for s in wf.steps] == ["Create account", "Set department", "Grant base group"]
        assert wf.on_failure_steps[0].type == "IdLE.Identity.Disable"

    def test_load_options_json(self, fixtures_dir):
        options = load_execution_options(fixtures_dir / "retry_options.json")

        assert options.default_retry_profile == "Standard"
        assert options.retry_profiles["Standard"].max_attempts == 3

    def test_unknown_root_key_names_file(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("Name: X\nLifecycleEvent: Joiner\nSchedule: daily\n", encoding="utf-8")

        with pytest.raises(ValidationError) as exc_info:
            load_workflow(path)

        assert "Schedule" in str(exc_info.value)
        assert "bad.yaml" in str(exc_info.value)

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "workflow.toml"
        path.write_text("Name = 'X'", encoding="utf-8")

        with pytest.raises(ValidationError, match="Unsupported file type"):
            load_document(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("Name: [unclosed\n", encoding="utf-8")

        with pytest.raises(ValidationError, match="Could not parse"):
            load_document(path)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[1, 2]", encoding="utf-8")

        with pytest.raises(ValidationError, match="mapping"):
            load_document(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValidationError, match="File not found"):
            load_document(tmp_path / "nope.yaml")


@pytest.mark.integration
class TestIdlectl:
    """idlectl plan / export / run."""

    @pytest.fixture
    def runner(self):
        return CliRunner(env={"COLUMNS": "200"})

    @pytest.fixture
    def files(self, fixtures_dir):
        return str(fixtures_dir / "joiner_workflow.yaml"), str(fixtures_dir / "joiner_request.yaml")

    def test_plan(self, runner, files):
        result = runner.invoke(cli, ["plan", *files])

        assert result.exit_code == 0, result.output
        assert "Create account" in result.output
        assert "Joiner - Standard" in result.output

    def test_plan_mismatch(self, runner, fixtures_dir, tmp_path):
        leaver = tmp_path / "leaver.yaml"
        leaver.write_text("Type: Leaver\n", encoding="utf-8")

        result = runner.invoke(cli, ["plan", str(fixtures_dir / "joiner_workflow.yaml"), str(leaver)])

        assert result.exit_code == 1
        assert "Planning failed" in result.output

    def test_export_stdout(self, runner, files):
        result = runner.invoke(cli, ["export", *files])

        assert result.exit_code == 0, result.output
        document = json.loads(result.output)
        assert document["schemaVersion"] == "1.0"
        assert document["plan"]["id"] == "22222222-2222-2222-2222-222222222222"
        assert len(document["plan"]["steps"]) == 3

    def test_export_file(self, runner, files, tmp_path):
        target = tmp_path / "plan.json"

        result = runner.invoke(cli, ["export", *files, "--output", str(target)])

        assert result.exit_code == 0, result.output
        assert json.loads(target.read_text(encoding="utf-8"))["metadata"]["workflowName"] == "Joiner - Standard"

    def test_run(self, runner, files, fixtures_dir, tmp_path):
        events_dir = tmp_path / "events"

        result = runner.invoke(cli, [
            "run", *files,
            "--options", str(fixtures_dir / "retry_options.json"),
            "--events-dir", str(events_dir),
        ])

        assert result.exit_code == 0, result.output
        assert "Run completed successfully" in result.output
        assert list(events_dir.glob("events_*.jsonl"))

    def test_run_what_if(self, runner, files):
        result = runner.invoke(cli, ["run", *files, "--what-if"])

        assert result.exit_code == 0, result.output
        assert "WhatIf" in result.output

    def test_run_reports_boundary_errors(self, runner, files):
        with patch.object(IdleController, "build_plan", side_effect=ValidationError("Plan is malformed")):
            result = runner.invoke(cli, ["run", *files])

        assert result.exit_code == 1
        assert "Run failed: Plan is malformed" in result.output

    def test_failed_run_exits_2(self, runner, fixtures_dir, tmp_path):
        # Mover requests need an existing identity; the mock store starts empty
        workflow_file = tmp_path / "mover.yaml"
        workflow_file.write_text(
            "Name: Mover\n"
            "LifecycleEvent: Mover\n"
            "Steps:\n"
            "  - Name: Move department\n"
            "    Type: IdLE.Identity.EnsureAttribute\n"
            "    With:\n"
            "      IdentityKey: E404\n"
            "      Name: Department\n"
            "      Value: Sales\n",
            encoding="utf-8",
        )
        request_file = tmp_path / "mover_request.yaml"
        request_file.write_text("Type: Mover\n", encoding="utf-8")

        result = runner.invoke(cli, ["run", str(workflow_file), str(request_file)])

        assert result.exit_code == 2
        assert "Run failed with 1 failed step(s)" in result.output
