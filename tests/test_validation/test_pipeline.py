"""Tests for the concurrent validation pipeline."""

from __future__ import annotations

import threading
import time

import pytest

from codeweave.core.config import ValidationConfig
from codeweave.core.models import (
    Framework,
    Language,
    ProjectConfig,
    Severity,
    Snippet,
    StageName,
    ValidationFinding,
    VulnerabilityClass,
)
from codeweave.validation.pipeline import ValidationPipeline
from codeweave.validation.stages import ALL_STAGES
from codeweave.validation.stages.base import ValidationStage

PROJECT = ProjectConfig("p")
CLEAN_TS = """\
export interface Point {
  x: number;
  y: number;
}

export function origin(): Point {
  return { x: 0, y: 0 };
}"""
EVAL_JS = "const result = eval(userInput);\nexport { result };"


def _snippet(content: str = CLEAN_TS, language: Language = Language.TYPESCRIPT) -> Snippet:
    return Snippet(content=content, language=language, framework=Framework.NONE)


class ExplodingStage(ValidationStage):
    stage = StageName.SEMANTIC

    def run(self, snippet, project_config):
        raise RuntimeError("analyser crashed")


class SleepingStage(ValidationStage):
    stage = StageName.BEST_PRACTICES

    def __init__(self, seconds: float) -> None:
        self.seconds = seconds

    def run(self, snippet, project_config):
        time.sleep(self.seconds)
        return []


class FloodStage(ValidationStage):
    stage = StageName.SYNTAX

    def run(self, snippet, project_config):
        return [self._make_finding(f"problem {i}") for i in range(30)]


class BarrierStage(ValidationStage):
    def __init__(self, stage: StageName, barrier: threading.Barrier) -> None:
        self.stage = stage
        self.barrier = barrier

    def run(self, snippet, project_config):
        self.barrier.wait()
        return [ValidationFinding(stage=self.stage, severity=Severity.INFO, message="met", weight=1)]


class TestValidationPipeline:
    @pytest.mark.asyncio
    async def test_clean_snippet(self):
        report = await ValidationPipeline().validate(_snippet(), PROJECT)
        assert report.quality_score == 100
        assert report.issues == []
        assert report.is_valid
        assert report.skipped_stages == []

    @pytest.mark.asyncio
    async def test_security_finding(self, telemetry):
        report = await ValidationPipeline(telemetry=telemetry).validate(
            _snippet(EVAL_JS, Language.JAVASCRIPT), PROJECT
        )
        assert report.security_warnings == [VulnerabilityClass.CODE_INJECTION]
        assert len(report.findings_for(StageName.SECURITY)) == 1
        assert report.quality_score <= 93
        assert telemetry.errors == []

    @pytest.mark.asyncio
    async def test_security_skipped_when_not_enforced(self):
        project = ProjectConfig("p", enforce_security_scanning=False)
        report = await ValidationPipeline().validate(_snippet(EVAL_JS, Language.JAVASCRIPT), project)
        assert report.skipped_stages == [StageName.SECURITY]
        assert report.security_warnings == []
        assert report.quality_score == 100

    @pytest.mark.asyncio
    async def test_review_flag_follows_project(self):
        snippet = _snippet()
        assert (await ValidationPipeline().validate(snippet, PROJECT)).review_required is False

        project = ProjectConfig("p", enforce_code_review=True)
        report = await ValidationPipeline().validate(snippet, project)
        assert report.review_required is True
        assert report.quality_score == 100
        assert report.to_dict()["review_required"] is True

    @pytest.mark.asyncio
    async def test_disabled_stages(self):
        pipeline = ValidationPipeline(disabled_stages=["lint", StageName.SEMANTIC])
        report = await pipeline.validate(_snippet("var x = 1;", Language.JAVASCRIPT), PROJECT)
        assert report.skipped_stages == [StageName.LINT, StageName.SEMANTIC]
        assert report.findings_for(StageName.LINT) == []

    @pytest.mark.asyncio
    async def test_raising_stage_is_incomplete(self, telemetry):
        stages = [cls() for cls in ALL_STAGES if cls.stage != StageName.SEMANTIC] + [ExplodingStage()]
        pipeline = ValidationPipeline(stages, telemetry=telemetry)

        report = await pipeline.validate(_snippet(EVAL_JS, Language.JAVASCRIPT), PROJECT)

        assert report.incomplete_stages == [StageName.SEMANTIC]
        assert report.security_warnings == [VulnerabilityClass.CODE_INJECTION]
        assert not report.is_valid
        ((name, err, fields),) = telemetry.errors
        assert name == "validation_stage_incomplete"
        assert fields["stage"] == "semantic"
        assert "analyser crashed" in str(err)

    @pytest.mark.asyncio
    async def test_slow_stage_times_out(self):
        pipeline = ValidationPipeline([SleepingStage(0.5)], stage_timeout=0.05, timeout=2.0)
        report = await pipeline.validate(_snippet(), PROJECT)
        assert report.incomplete_stages == [StageName.BEST_PRACTICES]
        assert report.quality_score == 100

    @pytest.mark.asyncio
    async def test_overall_timeout(self):
        pipeline = ValidationPipeline(
            [SleepingStage(0.5), FloodStage()], stage_timeout=2.0, timeout=0.1
        )
        report = await pipeline.validate(_snippet(), PROJECT)
        assert report.incomplete_stages == [StageName.BEST_PRACTICES]
        assert len(report.findings_for(StageName.SYNTAX)) == 30

    @pytest.mark.asyncio
    async def test_score_floors_at_zero(self):
        report = await ValidationPipeline([FloodStage()]).validate(_snippet(), PROJECT)
        assert report.quality_score == 0
        assert report.error_count == 0
        assert report.warning_count == 30

    @pytest.mark.asyncio
    async def test_stages_run_concurrently(self):
        barrier = threading.Barrier(2, timeout=2.0)
        pipeline = ValidationPipeline(
            [BarrierStage(StageName.LINT, barrier), BarrierStage(StageName.SEMANTIC, barrier)],
            stage_timeout=3.0,
            timeout=3.0,
        )
        report = await pipeline.validate(_snippet(), PROJECT)
        assert report.incomplete_stages == []
        assert report.quality_score == 98

    @pytest.mark.asyncio
    async def test_no_active_stages(self):
        report = await ValidationPipeline([]).validate(_snippet(), PROJECT)
        assert report.quality_score == 100
        assert report.incomplete_stages == []

    def test_from_config(self):
        config = ValidationConfig(timeout=3.0, stage_timeout=1.0, disabled_stages=["best_practices"])
        pipeline = ValidationPipeline.from_config(config)
        assert pipeline.timeout == 3.0
        assert pipeline.stage_timeout == 1.0
        assert pipeline.disabled_stages == {StageName.BEST_PRACTICES}
        assert len(pipeline.stages) == len(ALL_STAGES)
