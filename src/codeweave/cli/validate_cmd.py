"""codeweave validate command."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import click

from codeweave.core.config import load_config
from codeweave.core.errors import CodeWeaveError
from codeweave.core.models import Framework, Language, ProjectConfig, Snippet
from codeweave.core.output import error_console, print_validation_report
from codeweave.validation.pipeline import ValidationPipeline

LANGUAGE_BY_SUFFIX = {
    ".ts": Language.TYPESCRIPT,
    ".tsx": Language.TYPESCRIPT,
    ".js": Language.JAVASCRIPT,
    ".jsx": Language.JAVASCRIPT,
    ".mjs": Language.JAVASCRIPT,
    ".py": Language.PYTHON,
    ".java": Language.JAVA,
    ".go": Language.GO,
    ".rs": Language.RUST,
    ".cs": Language.CSHARP,
    ".cpp": Language.CPP,
    ".cc": Language.CPP,
    ".hpp": Language.CPP,
    ".rb": Language.RUBY,
    ".php": Language.PHP,
    ".kt": Language.KOTLIN,
    ".swift": Language.SWIFT,
    ".sql": Language.SQL,
    ".sh": Language.SHELL,
    ".html": Language.HTML,
    ".css": Language.CSS,
    ".yaml": Language.YAML,
    ".yml": Language.YAML,
}


def guess_language(path: Path) -> Language:
    return LANGUAGE_BY_SUFFIX.get(path.suffix.lower(), Language.OTHER)


@click.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--language", "-l", type=click.Choice([x.value for x in Language]), default=None,
              help="Language (guessed from the file suffix by default)")
@click.option("--framework", "-f", type=click.Choice([x.value for x in Framework]), default="none")
@click.option("--project", "project_id", default="default_project", help="Project whose settings apply")
@click.option("--no-security", is_flag=True, help="Skip the security stage")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@click.option("--fail-under", type=int, default=0, help="Exit 1 if the quality score is below this")
def validate(
    path: Path,
    language: str | None,
    framework: str,
    project_id: str,
    no_security: bool,
    as_json: bool,
    fail_under: int,
):
    """Run the validation pipeline over an existing source file."""
    try:
        config = load_config(Path.cwd())
    except CodeWeaveError as e:
        error_console.print(f"[red]{e}[/red]")
        sys.exit(2)

    project = config.projects.get(project_id) or ProjectConfig(project_id=project_id)
    if no_security:
        project.enforce_security_scanning = False

    snippet = Snippet(
        content=path.read_text(errors="ignore"),
        language=Language(language) if language else guess_language(path),
        framework=Framework(framework),
        description=str(path),
    )
    pipeline = ValidationPipeline.from_config(config.validation)
    report = asyncio.run(pipeline.validate(snippet, project))

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        print_validation_report(report)

    if fail_under and report.quality_score < fail_under:
        sys.exit(1)
