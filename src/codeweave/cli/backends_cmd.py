"""codeweave backends command."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click
from rich.table import Table

from codeweave.core.config import load_config
from codeweave.core.errors import CodeWeaveError
from codeweave.core.output import console, error_console
from codeweave.engine import Orchestrator, build_orchestrator
from codeweave.selector.engine import HealthStatus


@click.command()
@click.option("--check", is_flag=True, help="Probe every backend's health")
def backends(check: bool):
    """List configured backends."""
    try:
        orchestrator = build_orchestrator(load_config(Path.cwd()), Path.cwd())
    except CodeWeaveError as e:
        error_console.print(f"[red]{e}[/red]")
        sys.exit(2)

    health: dict[str, HealthStatus] = {}
    if check:
        health = asyncio.run(_probe_all(orchestrator))

    table = Table(title="  Backends", title_justify="left")
    table.add_column("Name", style="bold")
    table.add_column("Kind")
    table.add_column("Model")
    table.add_column("Tags")
    if check:
        table.add_column("Health")
    for backend in orchestrator.registry.all():
        row = [backend.name, backend.kind.value, backend.model or "-", ", ".join(sorted(backend.tags))]
        if check:
            status = health.get(backend.name)
            if status is None:
                row.append("[dim]unknown[/dim]")
            elif status.healthy:
                row.append(f"[green]healthy[/green] [dim]{status.latency_ms:.0f}ms[/dim]")
            else:
                row.append(f"[red]unhealthy[/red] [dim]{status.error}[/dim]")
        table.add_row(*row)

    console.print()
    console.print(table)
    console.print()


async def _probe_all(orchestrator: Orchestrator) -> dict[str, HealthStatus]:
    try:
        await asyncio.gather(*(orchestrator.selector.probe(b) for b in orchestrator.registry.all()))
        return orchestrator.health_snapshot()
    finally:
        await orchestrator.aclose()
