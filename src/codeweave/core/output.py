"""Rich terminal formatting for CodeWeave output."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.syntax import Syntax
from rich.table import Table

from codeweave.core.models import Severity, Snippet, ValidationFinding, ValidationReport

console = Console()
error_console = Console(stderr=True)


SEVERITY_ICONS = {
    Severity.ERROR: "[red]●[/red]",
    Severity.WARNING: "[yellow]●[/yellow]",
    Severity.INFO: "[blue]●[/blue]",
}

_SEVERITY_ORDER = {Severity.ERROR: 0, Severity.WARNING: 1, Severity.INFO: 2}

# Lexer names for rich.syntax where they differ from Language values
_LEXERS = {"csharp": "csharp", "cpp": "cpp", "shell": "bash", "other": "text"}


def score_color(score: int) -> str:
    """Return color name based on score."""
    if score >= 80:
        return "green"
    elif score >= 60:
        return "yellow"
    return "red"


def progress_bar(score: int, width: int = 10) -> str:
    """Create a text-based progress bar."""
    filled = round(score / 100 * width)
    empty = width - filled
    color = score_color(score)
    return f"[{color}]{'█' * filled}{'░' * empty}[/{color}]"


def format_finding(finding: ValidationFinding) -> str:
    """Format a single finding for terminal output."""
    icon = SEVERITY_ICONS.get(finding.severity, "●")
    location = f"  line {finding.line}" if finding.line else ""
    rule = f" [dim]({finding.rule_id})[/dim]" if finding.rule_id else ""
    return (
        f"  {icon} {finding.stage.value:<15} {finding.message}{rule}{location}"
        f"  [dim]-{finding.weight}[/dim]"
    )


def print_snippet(snippet: Snippet) -> None:
    """Print generated code with syntax highlighting."""
    lexer = _LEXERS.get(snippet.language.value, snippet.language.value)
    console.print(Panel(
        Syntax(snippet.content, lexer, line_numbers=True, word_wrap=True),
        title=f"[bold]{snippet.language.value}[/bold]  [dim]{snippet.id}[/dim]",
        subtitle=f"[dim]{snippet.backend}[/dim]" if snippet.backend else None,
        border_style="cyan",
        padding=(0, 1),
    ))
    if snippet.description:
        console.print(f"  [dim]{snippet.description}[/dim]")


def print_validation_report(report: ValidationReport) -> None:
    """Print the validation report card."""
    color = score_color(report.quality_score)

    lines = []
    lines.append("")
    lines.append(
        f"  Quality Score:  [{color}]{report.quality_score}/100[/{color}]  "
        f"{progress_bar(report.quality_score)}"
    )
    lines.append("")

    for finding in sorted(report.issues, key=lambda f: _SEVERITY_ORDER.get(f.severity, 3)):
        lines.append(format_finding(finding))

    if not report.issues:
        lines.append("  [green]No issues found.[/green]")

    if report.security_warnings:
        lines.append("")
        lines.append(
            "  [red]Security:[/red] "
            + ", ".join(w.value for w in report.security_warnings)
        )
    if report.incomplete_stages:
        lines.append("")
        lines.append(
            "  [yellow]Incomplete stages:[/yellow] "
            + ", ".join(s.value for s in report.incomplete_stages)
        )
    if report.skipped_stages:
        lines.append(
            "  [dim]Skipped stages: "
            + ", ".join(s.value for s in report.skipped_stages)
            + "[/dim]"
        )
    if report.review_required:
        lines.append("")
        lines.append("  [yellow]Human code review required before this code is used.[/yellow]")
    lines.append("")

    console.print(Panel(
        "\n".join(lines),
        title="[bold]CodeWeave Validation Report[/bold]",
        border_style=color,
        padding=(0, 1),
    ))


def snippet_table(snippets: list[Snippet] | tuple[Snippet, ...], title: str) -> Table:
    table = Table(title=title, title_justify="left")
    table.add_column("Created", style="dim")
    table.add_column("Id")
    table.add_column("Language")
    table.add_column("Score", justify="right")
    table.add_column("Backend")
    table.add_column("Description", overflow="fold")
    for snippet in snippets:
        color = score_color(snippet.quality_score)
        table.add_row(
            snippet.created_at.strftime("%Y-%m-%d %H:%M"),
            snippet.id[:12],
            snippet.language.value,
            f"[{color}]{snippet.quality_score}[/{color}]",
            snippet.backend or "-",
            snippet.description[:80],
        )
    return table


def get_progress() -> Progress:
    """Create a spinner for long-running requests."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    )
