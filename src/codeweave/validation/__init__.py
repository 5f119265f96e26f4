"""Snippet validation."""

from codeweave.validation.pipeline import ValidationPipeline
from codeweave.validation.scoring import STAGE_WEIGHTS, compute_quality_score

__all__ = ["STAGE_WEIGHTS", "ValidationPipeline", "compute_quality_score"]
