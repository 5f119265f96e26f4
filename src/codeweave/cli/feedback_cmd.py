"""codeweave feedback command."""

from __future__ import annotations

import asyncio
import getpass
import sys
from pathlib import Path

import click

from codeweave.core.config import load_config
from codeweave.core.errors import CodeWeaveError
from codeweave.core.output import console, error_console
from codeweave.engine import build_orchestrator


@click.command()
@click.argument("snippet_id")
@click.argument("rating", type=int)
@click.option("--comment", "-c", default="", help="Free-text comment")
@click.option("--user", "user_id", default=None, help="User id (defaults to the login name)")
def feedback(snippet_id: str, rating: int, comment: str, user_id: str | None):
    """Rate a generated snippet from 1 (poor) to 5 (excellent)."""
    project_path = Path.cwd()
    try:
        orchestrator = build_orchestrator(load_config(project_path), project_path)
    except CodeWeaveError as e:
        error_console.print(f"[red]{e}[/red]")
        sys.exit(2)

    try:
        ack = orchestrator.record_feedback(snippet_id, rating, comment, user_id or _current_user())
        if not ack.accepted:
            error_console.print(f"[red]Feedback rejected:[/red] {ack.reason}")
            sys.exit(1)
        if orchestrator.persistence is None:
            console.print("\n  [yellow]Persistence is disabled; feedback was not saved.[/yellow]\n")
            return
        if not orchestrator.flush_feedback():
            error_console.print("[red]Could not save feedback.[/red]")
            sys.exit(1)
    finally:
        asyncio.run(orchestrator.aclose())

    console.print(f"\n  [green]Feedback saved[/green] for {snippet_id} ({rating}/5).\n")


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"
