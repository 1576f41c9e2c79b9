#!/usr/bin/env python3
"""
IdLE Control CLI - Command Line Interface for the IdLE engine.

Provides commands for planning workflows against lifecycle requests,
exporting plans as JSON contract artifacts and running plans against the
in-memory mock provider.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..audit import JsonlEventSink, export_plan, export_plan_to_file
from ..engine import Executor, Planner
from ..errors import IdleError
from ..models import ExecutionResult, ExecutionStatus, OnFailureStatus, Plan, StepStatus
from ..providers import MockIdentityProvider
from ..steps import load_common_step_pack
from ..workflows import load_execution_options, load_request, load_workflow

# Setup logging
logging.basicConfig(level=logging.WARNING, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# Rich console for pretty output
console = Console()

STATUS_STYLES = {
    "Completed": "green",
    "Planned": "green",
    "Failed": "red",
    "PartiallyFailed": "yellow",
    "NotApplicable": "dim",
    "NotRun": "dim",
    "WhatIf": "blue",
}


class IdleController:
    """Wires loaders, step packs, mock provider, planner and executor together."""

    def __init__(self, provider_alias: str = "Identity"):
        self.provider_alias = provider_alias
        self.step_packs = [load_common_step_pack()]
        self.provider = MockIdentityProvider(name="MockIdentity")
        self.planner = Planner(self.step_packs)
        self.executor = Executor(self.step_packs)

    def providers(self) -> Dict[str, Any]:
        return {self.provider_alias: self.provider}

    def build_plan(self, workflow_file: str, request_file: str) -> Plan:
        workflow = load_workflow(workflow_file)
        request = load_request(request_file)
        return self.planner.plan(workflow, request, self.providers())


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.option('--provider-alias', default='Identity', help='Alias the mock provider is registered under')
@click.pass_context
def cli(ctx, verbose, provider_alias):
    """IdLE Control CLI - Identity Lifecycle planning and execution"""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    ctx.ensure_object(dict)
    ctx.obj['controller'] = IdleController(provider_alias)


@cli.command()
@click.argument('workflow_file', type=click.Path(exists=True))
@click.argument('request_file', type=click.Path(exists=True))
@click.pass_context
def plan(ctx, workflow_file, request_file):
    """Build a plan and show its steps."""
    controller = ctx.obj['controller']

    try:
        built = controller.build_plan(workflow_file, request_file)
    except IdleError as e:
        console.print(f"[red]Planning failed: {e}[/red]")
        sys.exit(1)

    display_plan(built)


@cli.command()
@click.argument('workflow_file', type=click.Path(exists=True))
@click.argument('request_file', type=click.Path(exists=True))
@click.option('--output', '-o', type=click.Path(), help='Write the export to this file instead of stdout')
@click.pass_context
def export(ctx, workflow_file, request_file, output):
    """Export a plan as the JSON contract artifact."""
    controller = ctx.obj['controller']

    try:
        built = controller.build_plan(workflow_file, request_file)
    except IdleError as e:
        console.print(f"[red]Planning failed: {e}[/red]")
        sys.exit(1)

    if output:
        path = export_plan_to_file(built, output)
        console.print(f"[green]Plan exported to {path}[/green]")
    else:
        click.echo(export_plan(built), nl=False)


@cli.command()
@click.argument('workflow_file', type=click.Path(exists=True))
@click.argument('request_file', type=click.Path(exists=True))
@click.option('--options', 'options_file', type=click.Path(exists=True), help='ExecutionOptions file')
@click.option('--what-if', is_flag=True, help='Return immediately without running any step')
@click.option('--events-dir', type=click.Path(), help='Append events to daily JSONL files in this directory')
@click.pass_context
def run(ctx, workflow_file, request_file, options_file, what_if, events_dir):
    """Plan and execute a workflow against the mock provider."""
    controller = ctx.obj['controller']

    try:
        built = controller.build_plan(workflow_file, request_file)
        options = load_execution_options(options_file) if options_file else None
        sink = JsonlEventSink(events_dir) if events_dir else None
        result = controller.executor.invoke(
            built, controller.providers(), options=options, event_sink=sink, what_if=what_if
        )
    except IdleError as e:
        console.print(f"[red]Run failed: {e}[/red]")
        sys.exit(1)

    display_execution_result(result)
    if result.status == ExecutionStatus.FAILED:
        sys.exit(2)


def _styled(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def display_plan(built: Plan):
    """Display plan steps and warnings."""
    console.print(Panel.fit(
        f"[bold blue]{built.workflow_name}[/bold blue]\n"
        f"{built.lifecycle_event} - {built.correlation_id}"
    ))

    table = Table(title="Plan Steps")
    table.add_column("#", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Type", style="yellow")
    table.add_column("Status")
    table.add_column("Requires", style="magenta")

    for index, step in enumerate(built.steps, start=1):
        table.add_row(
            str(index),
            step.name,
            step.type,
            _styled(step.status.value),
            ", ".join(step.requires_capabilities) or "-",
        )
    console.print(table)

    if built.on_failure_steps:
        console.print(f"[bold]OnFailure steps ({len(built.on_failure_steps)})[/bold]")
        for step in built.on_failure_steps:
            console.print(f"  - {step.name} ({step.type}) {_styled(step.status.value)}")

    for warning in built.warnings:
        console.print(f"[yellow]Warning: {warning}[/yellow]")


def display_execution_result(result: ExecutionResult):
    """Display execution results."""
    if result.status == ExecutionStatus.COMPLETED:
        console.print("[green]✓ Run completed successfully[/green]")
    elif result.status == ExecutionStatus.WHAT_IF:
        console.print("[blue]WhatIf: no steps were run[/blue]")
        return
    else:
        console.print(f"[red]✗ Run failed with {len(result.failed_steps)} failed step(s)[/red]")

    table = Table(title="Step Results")
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="yellow")
    table.add_column("Status")
    table.add_column("Attempts", style="magenta")
    table.add_column("Error", style="red")

    for step in result.steps:
        table.add_row(step.name, step.type, _styled(step.status.value), str(step.attempts), step.error or "")
    console.print(table)

    if result.on_failure.status != OnFailureStatus.NOT_RUN:
        console.print(f"OnFailure: {_styled(result.on_failure.status.value)}")
        for step in result.on_failure.steps:
            marker = "✗" if step.status == StepStatus.FAILED else "✓"
            console.print(f"  {marker} {step.name} {step.error or ''}".rstrip())

    console.print(f"Events: {len(result.events)}")


def main(argv: Optional[list] = None):
    """Console script entry point."""
    cli(args=argv, obj={})


if __name__ == "__main__":
    main()
