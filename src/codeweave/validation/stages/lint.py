"""Lint stage: discouraged constructs and style violations."""

from __future__ import annotations

import re
from dataclasses import dataclass

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

MAX_LINE_LENGTH = 120


@dataclass(frozen=True)
class LintRule:
    rule_id: str
    pattern: re.Pattern[str]
    message: str
    languages: frozenset[Language] | None = None

    def applies_to(self, language: Language) -> bool:
        return self.languages is None or language in self.languages


_PYTHON = frozenset({Language.PYTHON})

LINT_RULES: list[LintRule] = [
    LintRule(
        "no-console",
        re.compile(r"\bconsole\.log\s*\("),
        "Remove console.log statements",
        JS_FAMILY,
    ),
    LintRule(
        "no-var",
        re.compile(r"(?m)(?:^|[;{(\s])var\s+[A-Za-z_$]"),
        "Use let or const instead of var",
        JS_FAMILY,
    ),
    LintRule(
        "no-debugger",
        re.compile(r"\bdebugger\s*;?"),
        "Remove debugger statements",
        JS_FAMILY,
    ),
    LintRule(
        "eqeqeq",
        re.compile(r"(?<![=!<>])==(?!=)|!=(?!=)"),
        "Use === and !== instead of == and !=",
        JS_FAMILY,
    ),
    LintRule(
        "no-print",
        re.compile(r"(?m)^\s*print\("),
        "Use logging instead of print()",
        _PYTHON,
    ),
    LintRule(
        "no-wildcard-import",
        re.compile(r"(?m)^\s*from\s+[\w.]+\s+import\s+\*"),
        "Avoid wildcard imports",
        _PYTHON,
    ),
    LintRule(
        "todo-comment",
        re.compile(r"#\s*(TODO|FIXME|XXX)\b"),
        "Resolve TODO/FIXME comments before shipping",
        _PYTHON,
    ),
    LintRule(
        "trailing-whitespace",
        re.compile(r"(?m)[ \t]+$"),
        "Trailing whitespace",
    ),
    LintRule(
        "max-line-length",
        re.compile(rf"(?m)^.{{{MAX_LINE_LENGTH + 1},}}$"),
        f"Line longer than {MAX_LINE_LENGTH} characters",
    ),
]


class LintStage(ValidationStage):
    """Fixed-ruleset style checks.  One finding per violated rule."""

    stage = StageName.LINT
    severity = Severity.WARNING
    description = "Style violations"

    def __init__(self, rules: list[LintRule] | None = None) -> None:
        self.rules = LINT_RULES if rules is None else rules

    def run(self, snippet: Snippet, project_config: ProjectConfig) -> list[ValidationFinding]:
        findings: list[ValidationFinding] = []
        source = snippet.content
        for rule in self.rules:
            if not rule.applies_to(snippet.language):
                continue
            hit = first_match(rule.pattern, source)
            if hit is None:
                continue
            line, count = hit
            message = rule.message if count == 1 else f"{rule.message} ({count} occurrences)"
            findings.append(self._make_finding(message, rule_id=rule.rule_id, line=line))
        return findings
