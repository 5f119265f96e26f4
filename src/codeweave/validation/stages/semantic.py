"""Semantic stage: heuristics for likely logic defects."""

from __future__ import annotations

import re

from codeweave.core.models import (
    JS_FAMILY,
    Language,
    ProjectConfig,
    Severity,
    Snippet,
    StageName,
    ValidationFinding,
)
from codeweave.validation.stages.base import ValidationStage, first_match

_TERMINATOR_RE = re.compile(r"^(return|throw|raise|break|continue)\b")
# Lines that legitimately follow a terminator at the same indentation
_BLOCK_CONTINUATION_RE = re.compile(
    r"^([}\])]|case\b|default\b|else\b|elif\b|except\b|finally\b|catch\b|end\b)"
)
_THEN_RE = re.compile(r"\.then\s*\(")
_CATCH_RE = re.compile(r"\.catch\s*\(|\btry\s*\{")
_UNHANDLED_MARKER_RE = re.compile(r"\bunhandled_promise\b")
_DROPPED_TASK_RE = re.compile(r"(?m)^\s*(?:asyncio\.)?(?:create_task|ensure_future)\(")
_FLOATING_ASYNC_RE = re.compile(r"(?m)^\s*(?:asyncio\.sleep|loop\.run_in_executor)\(")


def _comment_prefixes(language: Language) -> tuple[str, ...]:
    if language in (Language.PYTHON, Language.RUBY, Language.SHELL, Language.YAML):
        return ("#",)
    if language == Language.SQL:
        return ("--",)
    return ("//", "/*", "*")


def find_unreachable(source: str, language: Language) -> list[int]:
    """Line numbers of statements that directly follow a terminator in the same block."""
    comments = _comment_prefixes(language)
    lines = source.splitlines()
    unreachable: list[int] = []
    pending_indent: int | None = None

    for number, raw in enumerate(lines, start=1):
        stripped = raw.strip()
        if not stripped or stripped.startswith(comments):
            continue
        indent = len(raw) - len(raw.lstrip())

        if pending_indent is not None:
            if indent == pending_indent and not _BLOCK_CONTINUATION_RE.match(stripped):
                unreachable.append(number)
            if indent <= pending_indent:
                pending_indent = None

        if _TERMINATOR_RE.match(stripped) and _statement_ends(stripped):
            pending_indent = indent

    return unreachable


def _statement_ends(stripped: str) -> bool:
    # A terminator opening a multi-line expression is not complete yet
    return not stripped.endswith(("(", "[", "{", ",", "\\", "+", "&&", "||"))


class SemanticStage(ValidationStage):
    """Unreachable code and unhandled asynchronous results."""

    stage = StageName.SEMANTIC
    severity = Severity.WARNING
    description = "Likely logic defects"

    def run(self, snippet: Snippet, project_config: ProjectConfig) -> list[ValidationFinding]:
        source = snippet.content
        findings: list[ValidationFinding] = []

        for line in find_unreachable(source, snippet.language):
            findings.append(self._make_finding(
                "Unreachable code after return/throw",
                rule_id="unreachable-code",
                line=line,
            ))

        if snippet.language in JS_FAMILY:
            then = first_match(_THEN_RE, source)
            marker = first_match(_UNHANDLED_MARKER_RE, source)
            if then is not None and not _CATCH_RE.search(source):
                findings.append(self._make_finding(
                    "Promise chain has no .catch() handler",
                    rule_id="unhandled-promise",
                    line=then[0],
                ))
            elif marker is not None:
                findings.append(self._make_finding(
                    "Code is marked as leaving a promise unhandled",
                    rule_id="unhandled-promise",
                    line=marker[0],
                ))

        if snippet.language == Language.PYTHON:
            dropped = first_match(_DROPPED_TASK_RE, source)
            if dropped is not None:
                findings.append(self._make_finding(
                    "Task created without keeping a reference; it may be garbage collected",
                    rule_id="dropped-task",
                    line=dropped[0],
                ))
            floating = first_match(_FLOATING_ASYNC_RE, source)
            if floating is not None:
                findings.append(self._make_finding(
                    "Awaitable result is never awaited",
                    rule_id="unawaited-coroutine",
                    line=floating[0],
                ))

        return findings
