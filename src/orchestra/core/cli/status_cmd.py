"""orchestra status: summarize the persisted snapshot without running the loop."""

from __future__ import annotations

import asyncio
import json

import click


@click.command()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="YAML or JSON config file.")
@click.option("--json", "as_json", is_flag=True, help="Dump the normalized snapshot as JSON.")
def status(config_path: str | None, as_json: bool) -> None:
    """Show the current phase, project, specialists and recent events."""
    from orchestra.core.cli.common import create_store, load_config
    from orchestra.core.exceptions import OrchestraError
    from orchestra.workflow.models import snapshot_to_dict

    try:
        store = create_store(load_config(config_path))
        snapshot = asyncio.run(store.load())
    except OrchestraError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1) from e

    if as_json:
        click.echo(json.dumps(snapshot_to_dict(snapshot), indent=2, ensure_ascii=False))
        return

    from rich.console import Console
    from rich.markup import escape
    from rich.table import Table

    console = Console()
    project = snapshot.project
    console.print(f"[bold]Phase:[/] {escape(snapshot.phase.value)}")
    console.print(f"[bold]Project:[/] {escape(project.name)} ({escape(project.status.value)})")
    console.print(f"[bold]Goal:[/] {escape(project.goal)}")
    console.print(f"[bold]Focus:[/] {escape(snapshot.orchestrator.current_focus or 'None')}")

    if snapshot.specialists:
        table = Table(title="Specialists")
        table.add_column("ID")
        table.add_column("Role")
        table.add_column("Task")
        for s in snapshot.specialists:
            table.add_row(escape(s.id), escape(s.role), escape(s.task_description or "(idle)"))
        console.print(table)
    else:
        console.print("No active specialists.")

    open_bugs = project.open_bugs
    console.print(f"[bold]Open bugs:[/] {len(open_bugs)}")
    for bug in open_bugs:
        console.print(f"  {bug.id} [{bug.severity}/{bug.status}] {bug.description}", markup=False)

    recent = snapshot.event_log[-5:]
    if recent:
        console.print("[bold]Recent events:[/]")
        for event in recent:
            console.print(f"  [{event.timestamp}] {event.actor}: {event.event[:100]}", markup=False)
