"""Validation stages."""

from codeweave.validation.stages.base import ValidationStage
from codeweave.validation.stages.best_practices import BestPracticesStage
from codeweave.validation.stages.lint import LintStage
from codeweave.validation.stages.security import SecurityStage
from codeweave.validation.stages.semantic import SemanticStage
from codeweave.validation.stages.syntax import SyntaxStage

ALL_STAGES: list[type[ValidationStage]] = [
    SyntaxStage,
    LintStage,
    SemanticStage,
    SecurityStage,
    BestPracticesStage,
]

__all__ = [
    "ALL_STAGES",
    "BestPracticesStage",
    "LintStage",
    "SecurityStage",
    "SemanticStage",
    "SyntaxStage",
    "ValidationStage",
]
