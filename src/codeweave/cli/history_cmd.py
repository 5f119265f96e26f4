"""codeweave history command."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import click

from codeweave.core.config import load_config
from codeweave.core.errors import CodeWeaveError
from codeweave.core.output import console, error_console, snippet_table
from codeweave.engine import build_orchestrator


@click.command()
@click.option("--project", "project_id", default="default_project", help="Project id")
@click.option("--file", "file_id", default=None, help="Only snippets for this file id")
@click.option("--limit", type=click.IntRange(min=1), default=20, help="Number of snippets to show")
@click.option("--json", "as_json", is_flag=True, help="Export as JSON")
def history(project_id: str, file_id: str | None, limit: int, as_json: bool):
    """Show the generated snippet history for a project.

    History survives between runs only when [persistence] is enabled.
    """
    project_path = Path.cwd()
    try:
        config = load_config(project_path)
    except CodeWeaveError as e:
        error_console.print(f"[red]{e}[/red]")
        sys.exit(2)
    if not config.persistence.enabled:
        console.print(
            "\n  Persistence is disabled. Set [bold]enabled = true[/bold] under "
            "\\[persistence] in codeweave.toml to keep history.\n"
        )
        return

    try:
        orchestrator = build_orchestrator(config, project_path)
    except CodeWeaveError as e:
        error_console.print(f"[red]{e}[/red]")
        sys.exit(2)
    try:
        snippets = orchestrator.get_history(project_id, file_id)[-limit:]
    finally:
        asyncio.run(orchestrator.aclose())

    if as_json:
        click.echo(json.dumps([s.to_dict() for s in snippets], indent=2))
        return

    if not snippets:
        console.print("\n  No history yet. Run `codeweave generate` to start.\n")
        return

    console.print()
    console.print(snippet_table(snippets, title=f"  History for {project_id}"))
    console.print()
