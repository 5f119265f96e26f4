"""codeweave generate command."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import click

from codeweave.core.config import ensure_gitignore, load_config
from codeweave.core.errors import CodeWeaveError
from codeweave.core.models import (
    CommandContext,
    Framework,
    GenerationMode,
    Language,
    UserRole,
)
from codeweave.core.output import (
    console,
    error_console,
    get_progress,
    print_snippet,
    print_validation_report,
)
from codeweave.engine import build_orchestrator


@click.command()
@click.argument("prompt")
@click.option("--language", "-l", type=click.Choice([x.value for x in Language]), default=None,
              help="Target language (defaults to the project setting)")
@click.option("--framework", "-f", type=click.Choice([x.value for x in Framework]), default=None,
              help="Target framework (defaults to the project setting)")
@click.option("--mode", "-m", type=click.Choice([x.value for x in GenerationMode]), default="new",
              help="Generation mode")
@click.option("--project", "project_id", default="default_project", help="Project id")
@click.option("--file", "file_id", default=None, help="File id within the project")
@click.option("--backend", default=None, help="Preferred backend name")
@click.option("--session", "session_key", default="cli", help="Session key for the conversation log")
@click.option("--role", type=click.Choice([x.value for x in UserRole]), default="developer")
@click.option("--temperature", type=click.FloatRange(0.0, 1.0), default=None,
              help="Sampling temperature (defaults to the backend setting)")
@click.option("--max-tokens", type=click.IntRange(min=1), default=2048)
@click.option("--existing", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None,
              help="File holding the code to refactor, debug or optimize")
@click.option("--keyword", "keywords", multiple=True, help="Keyword tag (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.option("--fail-under", type=int, default=0, help="Exit 1 if the quality score is below this")
def generate(
    prompt: str,
    language: str | None,
    framework: str | None,
    mode: str,
    project_id: str,
    file_id: str | None,
    backend: str | None,
    session_key: str,
    role: str,
    temperature: float | None,
    max_tokens: int,
    existing: Path | None,
    keywords: tuple[str, ...],
    as_json: bool,
    fail_under: int,
):
    """Generate code for PROMPT and validate it."""
    project_path = Path.cwd()
    try:
        config = load_config(project_path)
    except CodeWeaveError as e:
        error_console.print(f"[red]{e}[/red]")
        sys.exit(2)

    project = config.projects.get(project_id)
    ctx = CommandContext(
        session_key=session_key,
        project_id=project_id,
        file_id=file_id,
        target_language=Language(language) if language else (
            project.default_language if project else Language.TYPESCRIPT
        ),
        target_framework=Framework(framework) if framework else (
            project.default_framework if project else Framework.REACT
        ),
        generation_mode=GenerationMode(mode),
        existing_code=existing.read_text(errors="ignore") if existing else None,
        preferred_backend=backend,
        temperature=temperature,
        max_tokens=max_tokens,
        keywords=keywords,
        role=UserRole(role),
    )

    if config.persistence.enabled:
        ensure_gitignore(project_path)

    try:
        snippet, report = asyncio.run(_generate(config, project_path, ctx, prompt, as_json))
    except CodeWeaveError as e:
        error_console.print(f"[red]{type(e).__name__}:[/red] {e}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps({"snippet": snippet.to_dict(), "report": report.to_dict()}, indent=2, default=str))
    else:
        print_snippet(snippet)
        print_validation_report(report)

    if fail_under and report.quality_score < fail_under:
        console.print(f"  [red]Quality score {report.quality_score} is below {fail_under}.[/red]")
        sys.exit(1)


async def _generate(config, project_path: Path, ctx: CommandContext, prompt: str, quiet: bool):
    orchestrator = build_orchestrator(config, project_path)
    try:
        if quiet:
            return await orchestrator.generate_code(ctx, prompt)
        with get_progress() as progress:
            progress.add_task(f"Generating ({ctx.generation_mode.value}, {ctx.target_language.value})...", total=None)
            return await orchestrator.generate_code(ctx, prompt)
    finally:
        await orchestrator.aclose()

