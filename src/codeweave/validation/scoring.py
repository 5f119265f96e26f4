"""Quality score computation for validation findings."""

from __future__ import annotations

from typing import Iterable

from codeweave.core.models import StageName, ValidationFinding

MAX_SCORE = 100

# Deduction points per finding, by stage
STAGE_WEIGHTS: dict[StageName, int] = {
    StageName.SYNTAX: 10,
    StageName.LINT: 2,
    StageName.SEMANTIC: 5,
    StageName.SECURITY: 7,
    StageName.BEST_PRACTICES: 3,
}


def compute_quality_score(findings: Iterable[ValidationFinding]) -> int:
    """
    Compute the 0-100 quality score for a snippet.

    Starts at 100, deducts each finding's weight, floors at 0.
    """
    score = MAX_SCORE
    for finding in findings:
        score -= max(0, finding.weight)
    return max(0, min(MAX_SCORE, score))
