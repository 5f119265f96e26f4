"""Validation pipeline: runs every stage concurrently and aggregates a report."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from codeweave.core.config import ValidationConfig
from codeweave.core.errors import ValidationStageError
from codeweave.core.models import (
    ProjectConfig,
    Snippet,
    StageName,
    ValidationFinding,
    ValidationReport,
)
from codeweave.core.telemetry import NullTelemetrySink, TelemetrySink
from codeweave.validation.scoring import compute_quality_score
from codeweave.validation.stages import ALL_STAGES, ValidationStage
from codeweave.validation.stages.security import vulnerability_of

logger = logging.getLogger(__name__)


class ValidationPipeline:
    """Run validation stages over a snippet and produce a :class:`ValidationReport`.

    Every stage runs in a worker thread, bounded by ``stage_timeout``; the
    whole pipeline is bounded by ``timeout``.  A stage that raises or runs out
    of time is listed in ``incomplete_stages`` and never affects the others.
    """

    def __init__(
        self,
        stages: list[ValidationStage] | None = None,
        *,
        timeout: float = 5.0,
        stage_timeout: float = 2.0,
        disabled_stages: Iterable[StageName | str] = (),
        telemetry: TelemetrySink | None = None,
    ) -> None:
        self.stages = stages if stages is not None else [cls() for cls in ALL_STAGES]
        self.timeout = timeout
        self.stage_timeout = stage_timeout
        self.disabled_stages = {StageName(s) for s in disabled_stages}
        self.telemetry = telemetry or NullTelemetrySink()

    @classmethod
    def from_config(
        cls,
        config: ValidationConfig,
        telemetry: TelemetrySink | None = None,
    ) -> ValidationPipeline:
        return cls(
            timeout=config.timeout,
            stage_timeout=config.stage_timeout,
            disabled_stages=config.disabled_stages,
            telemetry=telemetry,
        )

    def active_stages(self, project_config: ProjectConfig) -> tuple[list[ValidationStage], list[StageName]]:
        """Split stages into ``(to_run, skipped)`` for a project."""
        active: list[ValidationStage] = []
        skipped: list[StageName] = []
        for stage in self.stages:
            if stage.stage in self.disabled_stages:
                skipped.append(stage.stage)
            elif stage.stage == StageName.SECURITY and not project_config.enforce_security_scanning:
                skipped.append(stage.stage)
            else:
                active.append(stage)
        return active, skipped

    async def validate(self, snippet: Snippet, project_config: ProjectConfig) -> ValidationReport:
        """Validate *snippet*.  Always returns a report, possibly partial."""
        report = ValidationReport(
            snippet_id=snippet.id,
            review_required=project_config.enforce_code_review,
        )
        active, report.skipped_stages = self.active_stages(project_config)

        tasks = {
            stage: asyncio.ensure_future(self._run_stage(stage, snippet, project_config))
            for stage in active
        }
        if tasks:
            try:
                _, pending = await asyncio.wait(tasks.values(), timeout=self.timeout)
            except asyncio.CancelledError:
                await _cancel_all(tasks.values())
                raise
            if pending:
                await _cancel_all(pending)

        findings: list[ValidationFinding] = []
        for stage, task in tasks.items():
            if task.cancelled():
                self._mark_incomplete(report, ValidationStageError(stage.stage.value), snippet)
                continue
            exc = task.exception()
            if exc is not None:
                if not isinstance(exc, ValidationStageError):
                    exc = ValidationStageError(stage.stage.value, exc)
                self._mark_incomplete(report, exc, snippet)
                continue
            findings.extend(task.result())

        report.issues = findings
        report.security_warnings = [
            vuln for vuln in (vulnerability_of(f) for f in findings) if vuln is not None
        ]
        report.quality_score = compute_quality_score(findings)

        logger.debug(
            "Validated %s: score=%d findings=%d incomplete=%s skipped=%s",
            snippet.id,
            report.quality_score,
            len(findings),
            [s.value for s in report.incomplete_stages],
            [s.value for s in report.skipped_stages],
        )
        return report

    async def _run_stage(
        self,
        stage: ValidationStage,
        snippet: Snippet,
        project_config: ProjectConfig,
    ) -> list[ValidationFinding]:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(stage.run, snippet, project_config),
                self.stage_timeout,
            )
        except asyncio.TimeoutError:
            raise ValidationStageError(stage.stage.value) from None
        except Exception as e:
            raise ValidationStageError(stage.stage.value, e) from e

    def _mark_incomplete(
        self,
        report: ValidationReport,
        err: ValidationStageError,
        snippet: Snippet,
    ) -> None:
        report.incomplete_stages.append(StageName(err.stage))
        logger.warning("%s (snippet %s)", err, snippet.id)
        try:
            self.telemetry.log_error(
                "validation_stage_incomplete",
                err,
                {"stage": err.stage, "snippet_id": snippet.id},
            )
        except Exception:
            logger.warning("Telemetry sink failed", exc_info=True)


async def _cancel_all(tasks: Iterable[asyncio.Future]) -> None:
    tasks = list(tasks)
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
