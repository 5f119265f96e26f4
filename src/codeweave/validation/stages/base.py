"""Base class for validation stages."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod

from codeweave.core.models import (
    ProjectConfig,
    Severity,
    Snippet,
    StageName,
    ValidationFinding,
)
from codeweave.validation.scoring import STAGE_WEIGHTS


class ValidationStage(ABC):
    """One independent analysis pass over a snippet.

    Stages only read the snippet; they may run concurrently with each other.
    """

    stage: StageName = StageName.LINT
    severity: Severity = Severity.WARNING
    description: str = ""

    @property
    def weight(self) -> int:
        return STAGE_WEIGHTS[self.stage]

    @abstractmethod
    def run(self, snippet: Snippet, project_config: ProjectConfig) -> list[ValidationFinding]:
        """Analyse *snippet* and return its findings."""
        ...

    def _make_finding(
        self,
        message: str,
        rule_id: str = "",
        line: int | None = None,
        severity: Severity | None = None,
    ) -> ValidationFinding:
        """Helper to create a ValidationFinding with this stage's defaults."""
        return ValidationFinding(
            stage=self.stage,
            severity=severity or self.severity,
            message=message,
            rule_id=rule_id,
            line=line,
            weight=self.weight,
        )


def line_of(source: str, index: int) -> int:
    """1-based line number of character offset *index*."""
    return source.count("\n", 0, index) + 1


def first_match(pattern: re.Pattern[str], source: str) -> tuple[int, int] | None:
    """Return ``(line, count)`` for *pattern* in *source*, or None."""
    matches = list(pattern.finditer(source))
    if not matches:
        return None
    return line_of(source, matches[0].start()), len(matches)
