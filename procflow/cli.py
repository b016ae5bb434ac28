"""Command line interface for procflow workflows."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError

from procflow import export_bpmn, get_repository, import_bpmn, load_config
from procflow.cli_utils.files import _dump_graph, _read_graph, _write_output
from procflow.graph import WorkflowGraph, validate_graph
from procflow.layout import apply_layout
from procflow.runtime import ProcessStatus

app = typer.Typer(help="CLI for procflow workflows")

# Command groups
graph_app = typer.Typer(help="Commands for workflow graph documents")
bpmn_app = typer.Typer(help="Commands for BPMN interchange files")
process_app = typer.Typer(help="Commands for inspecting process instances")

app.add_typer(graph_app, name="graph")
app.add_typer(bpmn_app, name="bpmn")
app.add_typer(process_app, name="process")


@app.callback()
def main() -> None:
    """Procflow CLI entry point."""
    pass


def _load(path: Path) -> WorkflowGraph:
    try:
        return _read_graph(path)
    except OSError as exc:
        typer.secho(f"Cannot read {path}: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except ValidationError as exc:
        typer.secho(f"{path} is not a valid workflow graph", fg=typer.colors.RED)
        typer.echo(str(exc))
        raise typer.Exit(code=1)


def _emit(text: str, output: Optional[Path]) -> None:
    if _write_output(text, output):
        typer.echo(f"Wrote {output}")
    else:
        typer.echo(text, nl=False)


@graph_app.command("validate")
def graph_validate(path: Path) -> None:
    """
    Check a workflow graph and list its problems.

    Problems such as unreachable activities or broken conditions are
    printed one per line. The command fails only when the graph cannot be
    executed at all.

    Example:
        procflow graph validate ./invoice.json
        # Output: unreachable_activity    3f2a...    Activity 'Archive' is not reachable ...
    """
    graph = _load(path)
    report = validate_graph(graph)
    for diagnostic in report.diagnostics:
        typer.echo(
            f"{diagnostic.kind.value}\t{diagnostic.subject_id or '-'}\t{diagnostic.message}"
        )
    if not report.diagnostics:
        typer.echo("No problems found")
    if not report.executable:
        typer.secho("Workflow is not executable", fg=typer.colors.RED)
        raise typer.Exit(code=1)


@graph_app.command("layout")
def graph_layout(
    path: Path,
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the laid out graph here instead of stdout"
    ),
) -> None:
    """Recompute activity positions with the auto-layout."""
    graph = _load(path)
    apply_layout(graph, load_config().layout)
    _emit(_dump_graph(graph), output)


@bpmn_app.command("export")
def bpmn_export(
    path: Path,
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the BPMN document here instead of stdout"
    ),
    name: Optional[str] = typer.Option(None, help="Process name to export"),
) -> None:
    """
    Convert a workflow graph to BPMN XML.

    Only topology, names, conditions and positions are exported; fields,
    SLAs and assignment rules have no BPMN counterpart.

    Example:
        procflow bpmn export ./invoice.json -o invoice.bpmn
    """
    graph = _load(path)
    _emit(export_bpmn(graph, process_name=name), output)


@bpmn_app.command("import")
def bpmn_import(
    xml_path: Path,
    output: Path = typer.Option(..., "--output", "-o", help="Graph document to create"),
    name: Optional[str] = typer.Option(None, help="Workflow name (defaults to the process name)"),
) -> None:
    """
    Convert a BPMN XML file to a new workflow graph.

    Every imported element receives a fresh id. Unsupported elements are
    skipped with a warning; a malformed document imports nothing.

    Example:
        procflow bpmn import ./invoice.bpmn -o invoice.json --name "Invoices"
    """
    try:
        xml = xml_path.read_bytes()
    except OSError as exc:
        typer.secho(f"Cannot read {xml_path}: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    result = import_bpmn(xml, due_date_hours=load_config().default_due_hours)
    if result.failure is not None:
        typer.secho(f"Import failed: {result.failure.message}", fg=typer.colors.RED)
        if result.failure.detail:
            typer.echo(result.failure.detail)
        raise typer.Exit(code=1)

    for diagnostic in result.diagnostics:
        typer.secho(f"Warning: {diagnostic.message}", fg=typer.colors.YELLOW)

    graph = result.to_graph(name=name)
    _write_output(_dump_graph(graph), output)
    typer.echo(
        f"Imported {len(graph.activities)} activities and "
        f"{len(graph.transitions)} transitions into {output}"
    )


@process_app.command("list")
def process_list(
    workflow: Optional[str] = typer.Option(None, help="Only show instances of this workflow"),
    status: Optional[ProcessStatus] = typer.Option(None, help="Only show instances in this status"),
) -> None:
    """
    List process instances with their status and current activity.

    Example:
        procflow process list --status active
        # Output: 9c1e...    active    Invoice 4711    review
    """
    repo = get_repository()
    instances = asyncio.run(repo.list_instances(workflow_id=workflow, status=status))
    if not instances:
        typer.echo("No processes found")
        return
    for instance in instances:
        typer.echo(
            f"{instance.id}\t{instance.status.value}\t{instance.name or '-'}\t"
            f"{instance.current_activity_id}"
        )


@process_app.command("show")
def process_show(process_id: str) -> None:
    """Show an instance, its owner and its history."""
    repo = get_repository()

    async def _fetch():
        instance = await repo.get_instance(process_id)
        if instance is None:
            return None, None, []
        graph = await repo.load_graph(instance.workflow_id)
        return instance, graph, await repo.list_history(process_id)

    instance, graph, history = asyncio.run(_fetch())
    if instance is None:
        typer.echo("Process not found")
        raise typer.Exit(code=1)

    def activity_name(activity_id: str) -> str:
        if graph is not None and activity_id in graph.activities:
            return graph.activities[activity_id].name
        return activity_id

    typer.echo(f"Process {instance.id}: {instance.status.value}")
    if instance.name:
        typer.echo(f"Name: {instance.name}")
    typer.echo(f"Current activity: {activity_name(instance.current_activity_id)}")
    owner = instance.assignment
    if owner.is_pool:
        pool = owner.position_id or owner.department_id or "everyone"
        typer.echo(f"Assigned to pool: {pool}")
    else:
        typer.echo(f"Assigned to: {owner.user_id}")
    for entry in history:
        line = f"- {entry.created_at.isoformat()} {entry.action.value} {activity_name(entry.activity_id)}"
        if entry.user_id:
            line += f" by {entry.user_id}"
        if entry.comment:
            line += f": {entry.comment}"
        typer.echo(line)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
