#!/usr/bin/env python3
"""
CLI for steprail.

Usage:
    steprail check workflow.json --connection gmail=conn_123
    steprail run workflow.json --input amount=10
    steprail config
"""
import asyncio
import json
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Load .env before importing steprail modules
load_dotenv()

from steprail.compiler.parse import load_workflow_file  # noqa: E402
from steprail.errors import StepRailError  # noqa: E402
from steprail.handlers.custom_code import CustomCodeHandler  # noqa: E402
from steprail.readiness.check import ConnectionRecord, check_readiness  # noqa: E402
from steprail.registry.handler_registry import HandlerRegistry  # noqa: E402
from steprail.runtime.events import StepCompleteEvent, StepErrorEvent, StepStartEvent, WorkflowCompleteEvent, to_wire  # noqa: E402
from steprail.runtime.execution import WorkflowRun  # noqa: E402
from steprail.schema.models import StepType  # noqa: E402
from steprail.shared.config import config as steprail_config  # noqa: E402

console = Console()

# Global verbose flag
VERBOSE = False


def _pairs(values, option):
    parsed = {}
    for value in values:
        key, sep, rest = value.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got '{value}'", param_hint=option)
        parsed[key.strip()] = rest
    return parsed


def _handle_error(exc: Exception) -> None:
    console.print(f"[red]✗ {exc}[/red]")
    if VERBOSE:
        console.print_exception()
    sys.exit(1)


@click.group()
@click.version_option(version="0.1.0", prog_name="steprail")
@click.option('--verbose', '-v', is_flag=True, help='Show full error tracebacks for debugging')
def cli(verbose: bool):
    """
    Steprail - run and check step-rail workflow definitions.

    \b
    Commands:
      check   - Pre-flight readiness check of a workflow file
      run     - Run a workflow file locally and stream its progress
      config  - Show current configuration
    """
    global VERBOSE
    VERBOSE = verbose


@cli.command()
@click.argument('workflow_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--connection', '-c', 'connections', multiple=True, help='Active connection as TOOLKIT=CONNECTION_ID')
@click.option('--table', '-t', 'tables', multiple=True, help='Name of an existing table')
@click.option('--json', 'as_json', is_flag=True, help='Print the readiness contract as JSON')
def check(workflow_file: Path, connections, tables, as_json: bool):
    """
    Check whether a workflow is ready to execute.

    Exits with status 1 when it is not.
    """
    try:
        definition = load_workflow_file(workflow_file)
        records = [
            ConnectionRecord(id=connection_id, toolkit_slug=slug)
            for slug, connection_id in _pairs(connections, "--connection").items()
        ]
        report = check_readiness(definition, records, tables=list(tables) if tables else None)
    except StepRailError as exc:
        _handle_error(exc)
        return

    if as_json:
        console.print(json.dumps(report.to_contract(), indent=2))
    else:
        status = "[green]● ready[/green]" if report.can_execute else "[red]○ not ready[/red]"
        console.print(Panel.fit(f"[bold cyan]{definition.name or workflow_file.name}[/bold cyan]  {status}", border_style="cyan"))
        table = Table(box=box.ROUNDED)
        table.add_column("Kind", style="cyan")
        table.add_column("Detail")
        for error in report.errors:
            table.add_row("[red]error[/red]", error)
        for warning in report.warnings:
            table.add_row("[yellow]warning[/yellow]", warning)
        for slug in report.resolved_connections:
            table.add_row("[green]connection[/green]", f"{slug} → {report.connection_bindings[slug]}")
        if table.row_count:
            console.print(table)

    if not report.can_execute:
        sys.exit(1)


@cli.command()
@click.argument('workflow_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--input', '-i', 'inputs', multiple=True, help='Workflow input as NAME=VALUE')
@click.option('--json', 'as_json', is_flag=True, help='Print raw progress events as JSON lines')
def run(workflow_file: Path, inputs, as_json: bool):
    """
    Run a workflow locally.

    Only custom-code and control steps have built-in handlers; tool and table
    steps need an integration and fail here.
    """
    try:
        definition = load_workflow_file(workflow_file)
        readiness = check_readiness(definition)
        handlers = HandlerRegistry({StepType.custom_code: CustomCodeHandler()})
        workflow_run = WorkflowRun(definition, handlers=handlers, readiness=readiness, inputs=_pairs(inputs, "--input"))
    except StepRailError as exc:
        _handle_error(exc)
        return

    def show(event):
        if as_json:
            console.print(json.dumps(to_wire(event), default=str), soft_wrap=True)
        elif isinstance(event, StepStartEvent):
            console.print(f"[dim]→[/dim] {event.step_name} [dim]({event.instance_id})[/dim]")
        elif isinstance(event, StepCompleteEvent):
            console.print(f"[green]✓[/green] {event.step_name} [dim]{event.duration_ms:.0f}ms[/dim]")
        elif isinstance(event, StepErrorEvent):
            console.print(f"[red]✗[/red] {event.step_name}: {event.error}")
        elif isinstance(event, WorkflowCompleteEvent):
            console.print(Panel(json.dumps(event.output, indent=2, default=str), title="output", border_style="green"))
        else:
            console.print(f"[red]Workflow failed:[/red] {event.error}")

    workflow_run.subscribe(show)
    result = asyncio.run(workflow_run.execute())
    if not result.succeeded:
        sys.exit(1)


@cli.command()
@click.option('--format', '-f', 'fmt', type=click.Choice(['json', 'table']), default='table', help='Output format')
def config(fmt: str):
    """
    Show current configuration.

    Displays configuration values loaded from STEPRAIL_* environment variables and .env file.
    """
    values = steprail_config.model_dump()
    if fmt == 'json':
        console.print(json.dumps(values, indent=2, default=str))
        return

    table = Table(title="Steprail Configuration", box=box.ROUNDED)
    table.add_column("Setting", style="cyan")
    table.add_column("Env Variable", style="dim")
    table.add_column("Value")
    for name, value in values.items():
        table.add_row(name, f"STEPRAIL_{name.upper()}", str(value))
    console.print(table)


def main():
    cli()


if __name__ == '__main__':
    main()
