"""End-to-end tests for the orchestrator."""

from __future__ import annotations

import asyncio
import threading
import time

import pytest

from codeweave.context.store import ContextStore
from codeweave.core.cancellation import CancellationToken
from codeweave.core.config import EngineConfig, PersistenceConfig
from codeweave.core.errors import (
    BackendRequestError,
    BackendTimeoutError,
    BackendUnavailableError,
    GenerationCancelledError,
    RateLimitedError,
)
from codeweave.core.models import (
    GenerationMode,
    Language,
    ProjectConfig,
    StageName,
    VulnerabilityClass,
)
from codeweave.engine import build_orchestrator
from codeweave.persistence.store import SqliteHistoryStore
from codeweave.validation.pipeline import ValidationPipeline
from codeweave.validation.stages.base import ValidationStage


class SlowStage(ValidationStage):
    stage = StageName.SEMANTIC

    def run(self, snippet, project_config):
        time.sleep(0.5)
        return []


async def _wait_for_event(telemetry, name: str) -> None:
    while name not in telemetry.names():
        await asyncio.sleep(0.01)


async def _wait_until(predicate) -> None:
    while not predicate():
        await asyncio.sleep(0.01)


class TestGenerateCode:
    @pytest.mark.asyncio
    async def test_round_trip(self, make_backend, make_orchestrator, ctx):
        orchestrator = make_orchestrator([make_backend("a")])

        snippet, report = await orchestrator.generate_code(ctx, "greet someone")

        assert report.quality_score == 100
        assert snippet.quality_score == 100
        assert snippet.backend == "a"
        assert snippet.description == "Answer to: greet someone"
        (stored,) = orchestrator.get_history("proj")
        assert stored == snippet
        (entry,) = orchestrator.conversation("s1")
        assert entry.prompt == "greet someone"
        assert entry.snippet_id == snippet.id

    @pytest.mark.asyncio
    async def test_skips_unhealthy_backend(self, make_backend, make_orchestrator, ctx):
        a, b = make_backend("a", healthy=False), make_backend("b")
        orchestrator = make_orchestrator([a, b])

        snippet, _ = await orchestrator.generate_code(ctx, "x")

        assert snippet.backend == "b"
        assert a.generate_calls == 0
        assert orchestrator.health_snapshot()["a"].healthy is False

    @pytest.mark.asyncio
    async def test_project_preferred_backend(self, make_backend, make_orchestrator, ctx):
        orchestrator = make_orchestrator(
            [make_backend("a"), make_backend("b")],
            projects={"proj": ProjectConfig("proj", preferred_backend="b")},
        )
        snippet, _ = await orchestrator.generate_code(ctx, "x")
        assert snippet.backend == "b"
        assert (await orchestrator.select_backend(ctx)).name == "b"

    @pytest.mark.asyncio
    async def test_no_backends(self, make_orchestrator, ctx, telemetry):
        orchestrator = make_orchestrator([])
        with pytest.raises(BackendUnavailableError):
            await orchestrator.generate_code(ctx, "x")
        assert orchestrator.get_history("proj") == ()
        assert orchestrator.conversation("s1") == ()
        assert [name for name, _, _ in telemetry.errors] == ["code_generation_failed"]
        assert telemetry.errors[0][2]["kind"] == "backend_unavailable"

    @pytest.mark.asyncio
    async def test_security_annotation(self, make_backend, make_orchestrator, ctx):
        backend = make_backend("a", code="const result = eval(userInput);\nexport { result };")
        orchestrator = make_orchestrator([backend])

        snippet, report = await orchestrator.generate_code(
            ctx.derive(target_language=Language.JAVASCRIPT), "run it"
        )

        assert report.security_warnings == [VulnerabilityClass.CODE_INJECTION]
        assert snippet.security_warnings == (VulnerabilityClass.CODE_INJECTION,)
        assert snippet.quality_score == report.quality_score <= 93
        assert orchestrator.get_history("proj")[0].security_warnings == (VulnerabilityClass.CODE_INJECTION,)

    @pytest.mark.asyncio
    async def test_security_not_enforced(self, make_backend, make_orchestrator, ctx):
        backend = make_backend("a", code="const result = eval(userInput);\nexport { result };")
        orchestrator = make_orchestrator(
            [backend], projects={"proj": ProjectConfig("proj", enforce_security_scanning=False)}
        )
        snippet, report = await orchestrator.generate_code(
            ctx.derive(target_language=Language.JAVASCRIPT), "run it"
        )
        assert snippet.security_warnings == ()
        assert report.skipped_stages == [StageName.SECURITY]

    @pytest.mark.asyncio
    async def test_code_review_enforced(self, make_backend, make_orchestrator, ctx):
        orchestrator = make_orchestrator(
            [make_backend("a")], projects={"proj": ProjectConfig("proj", enforce_code_review=True)}
        )
        _, report = await orchestrator.generate_code(ctx, "write it")
        assert report.review_required is True

    @pytest.mark.asyncio
    async def test_keywords_extracted_from_prompt(self, make_backend, make_orchestrator, ctx):
        orchestrator = make_orchestrator([make_backend("a")])
        snippet, _ = await orchestrator.generate_code(ctx, "Build a Navbar component")

        assert orchestrator.context_store.get_context(ctx.session_key).keywords == (
            "Build",
            "Navbar",
            "component",
        )
        assert {"Navbar", "component"} <= set(snippet.tags)

    @pytest.mark.asyncio
    async def test_explicit_keywords_kept(self, make_backend, make_orchestrator, ctx):
        orchestrator = make_orchestrator([make_backend("a")])
        await orchestrator.generate_code(ctx.derive(keywords=("auth",)), "Build a Navbar component")
        assert orchestrator.context_store.get_context(ctx.session_key).keywords == ("auth",)

    @pytest.mark.asyncio
    async def test_revision_links_parent(self, make_backend, make_orchestrator, ctx):
        orchestrator = make_orchestrator([make_backend("a")])
        first, _ = await orchestrator.generate_code(ctx, "write it")
        second, _ = await orchestrator.generate_code(
            ctx.derive(generation_mode=GenerationMode.REFACTOR), "tidy it"
        )
        assert first.parent_id is None
        assert second.parent_id == first.id
        assert [s.id for s in orchestrator.get_history("proj")] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_history_per_file(self, make_backend, make_orchestrator, ctx):
        orchestrator = make_orchestrator([make_backend("a")])
        a, _ = await orchestrator.generate_code(ctx.derive(file_id="a.ts"), "one")
        b, _ = await orchestrator.generate_code(ctx.derive(file_id="b.ts"), "two")
        assert orchestrator.get_history("proj", "b.ts") == (b,)
        assert orchestrator.get_history("proj") == (a, b)

    @pytest.mark.asyncio
    async def test_empty_backend_output(self, make_backend, make_orchestrator, ctx):
        orchestrator = make_orchestrator([make_backend("a", response="   ")])
        with pytest.raises(BackendRequestError):
            await orchestrator.generate_code(ctx, "x")
        assert orchestrator.get_history("proj") == ()

    @pytest.mark.asyncio
    async def test_backend_error_propagates(self, make_backend, make_orchestrator, ctx, telemetry):
        error = RateLimitedError("slow down", backend="a", retry_after=3)
        orchestrator = make_orchestrator([make_backend("a", error=error)])
        with pytest.raises(RateLimitedError) as exc_info:
            await orchestrator.generate_code(ctx, "x")
        assert exc_info.value.retryable
        assert telemetry.errors[-1][2]["kind"] == "rate_limited"

    @pytest.mark.asyncio
    async def test_generation_timeout(self, make_backend, make_orchestrator, ctx):
        backend = make_backend("a", delay=2.0)
        orchestrator = make_orchestrator([backend], generation_timeout=0.05)
        with pytest.raises(BackendTimeoutError):
            await orchestrator.generate_code(ctx, "x")
        assert backend.stream_closed
        assert orchestrator.get_history("proj") == ()

    @pytest.mark.asyncio
    async def test_telemetry_events(self, make_backend, make_orchestrator, ctx, telemetry):
        orchestrator = make_orchestrator([make_backend("a")])
        snippet, _ = await orchestrator.generate_code(ctx, "x")

        assert telemetry.names() == [
            "code_generation_started",
            "backend_selected",
            "code_generated",
            "code_validated",
        ]
        fields = dict(telemetry.events)["code_validated"]
        assert fields["backend"] == "a"
        assert fields["snippet_id"] == snippet.id
        assert fields["quality_score"] == 100

    @pytest.mark.asyncio
    async def test_broken_telemetry_sink(self, make_backend, make_orchestrator, ctx):
        class BrokenSink:
            def log_event(self, name, fields=None):
                raise RuntimeError("sink down")

            def log_error(self, name, err, fields=None):
                raise RuntimeError("sink down")

        orchestrator = make_orchestrator([make_backend("a")])
        orchestrator.telemetry = BrokenSink()

        snippet, _ = await orchestrator.generate_code(ctx, "x")
        assert orchestrator.get_history("proj") == (snippet,)

    @pytest.mark.asyncio
    async def test_conversation_cap(self, make_backend, make_orchestrator, ctx):
        orchestrator = make_orchestrator([make_backend("a")], conversation_cap=3)
        for i in range(5):
            await orchestrator.generate_code(ctx, f"p{i}")
        assert [e.prompt for e in orchestrator.conversation("s1")] == ["p2", "p3", "p4"]
        assert len(orchestrator.get_history("proj")) == 5

    @pytest.mark.asyncio
    async def test_concurrent_requests(self, make_backend, make_orchestrator, ctx):
        orchestrator = make_orchestrator([make_backend("a", delay=0.01)])
        results = await asyncio.gather(
            *(orchestrator.generate_code(ctx.derive(session_key=f"s{i}"), f"p{i}") for i in range(10))
        )
        assert len({snippet.id for snippet, _ in results}) == 10
        assert len(orchestrator.get_history("proj")) == 10


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_during_generation(self, make_backend, make_orchestrator, ctx, telemetry):
        backend = make_backend("a", delay=5.0)
        orchestrator = make_orchestrator([backend])
        token = CancellationToken()

        task = asyncio.ensure_future(orchestrator.generate_code(ctx, "x", cancel_token=token))
        await backend.started.wait()
        token.cancel("user pressed stop")

        with pytest.raises(GenerationCancelledError, match="user pressed stop"):
            await task
        assert backend.stream_closed
        assert orchestrator.get_history("proj") == ()
        assert orchestrator.conversation("s1") == ()
        name, _, fields = telemetry.errors[-1]
        assert name == "code_generation_cancelled"
        assert fields["recorded"] is False

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, make_backend, make_orchestrator, ctx):
        backend = make_backend("a")
        orchestrator = make_orchestrator([backend])
        token = CancellationToken()
        token.cancel()

        with pytest.raises(GenerationCancelledError):
            await orchestrator.generate_code(ctx, "x", cancel_token=token)
        assert backend.generate_calls == 0
        assert orchestrator.get_history("proj") == ()

    @pytest.mark.asyncio
    async def test_cancel_during_validation_keeps_snippet(self, make_backend, make_orchestrator, ctx, telemetry):
        pipeline = ValidationPipeline([SlowStage()], stage_timeout=2.0, timeout=2.0)
        orchestrator = make_orchestrator([make_backend("a")], pipeline=pipeline)
        token = CancellationToken()

        task = asyncio.ensure_future(orchestrator.generate_code(ctx, "x", cancel_token=token))
        await asyncio.wait_for(_wait_for_event(telemetry, "code_generated"), 2.0)
        token.cancel()

        with pytest.raises(GenerationCancelledError):
            await task
        (stored,) = orchestrator.get_history("proj")
        assert stored.quality_score == 100
        assert orchestrator.conversation("s1") == ()
        assert telemetry.errors[-1][2]["recorded"] is True

    @pytest.mark.asyncio
    async def test_task_cancellation(self, make_backend, make_orchestrator, ctx):
        backend = make_backend("a", delay=5.0)
        orchestrator = make_orchestrator([backend])

        task = asyncio.ensure_future(orchestrator.generate_code(ctx, "x"))
        await backend.started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.wait_for(_wait_until(lambda: backend.stream_closed), 1.0)
        assert orchestrator.get_history("proj") == ()


class TestFeedback:
    def test_record_feedback(self, make_orchestrator, telemetry):
        orchestrator = make_orchestrator([])
        ack = orchestrator.record_feedback("snip", 5, "great")
        assert ack.accepted
        assert orchestrator.feedback.pending_count() == 1
        name, fields = telemetry.events[-1]
        assert name == "code_feedback_submitted"
        assert fields == {"snippet_id": "snip", "rating": 5, "accepted": True}

    def test_rejected_feedback(self, make_orchestrator):
        orchestrator = make_orchestrator([])
        assert not orchestrator.record_feedback("snip", 9).accepted
        assert orchestrator.flush_feedback() == 0


class TestBuildOrchestrator:
    @pytest.mark.asyncio
    async def test_defaults_to_template_backend(self, tmp_path, ctx):
        orchestrator = build_orchestrator(EngineConfig(), tmp_path)
        assert orchestrator.registry.names() == ["local-template"]
        assert orchestrator.persistence is None

        snippet, report = await orchestrator.generate_code(ctx, "build a login form")
        await orchestrator.aclose()

        assert report.quality_score == 100
        assert "buildALoginForm" in snippet.content
        assert not (tmp_path / ".codeweave").exists()

    @pytest.mark.asyncio
    async def test_persistence_survives_restart(self, tmp_path, ctx):
        config = EngineConfig(persistence=PersistenceConfig(enabled=True))
        first = build_orchestrator(config, tmp_path)
        snippet, _ = await first.generate_code(ctx, "build a login form")
        first.record_feedback(snippet.id, 4, "handy")
        await first.aclose()

        second = build_orchestrator(config, tmp_path)
        try:
            (restored,) = second.get_history("proj")
            assert restored == snippet
        finally:
            await second.aclose()

        (feedback,) = SqliteHistoryStore(tmp_path).list_feedback(snippet.id)
        assert feedback.rating == 4


class ThreadRecordingStore:
    """Persistence stand-in that notes which thread each call runs on."""

    def __init__(self) -> None:
        self.threads: dict[str, int] = {}

    def save_snippet(self, snippet, project_id, file_id=None):
        self.threads["save_snippet"] = threading.get_ident()
        return snippet.id

    def list_snippets(self, project_id, *, limit=None):
        self.threads["list_snippets"] = threading.get_ident()
        return []

    def save_feedback(self, records):
        self.threads["save_feedback"] = threading.get_ident()
        return len(records)

    def list_feedback(self, snippet_id=None, *, limit=100):
        return []


class TestBlockingIO:
    @pytest.mark.asyncio
    async def test_disk_access_stays_off_the_event_loop(self, make_backend, make_orchestrator, ctx):
        store = ThreadRecordingStore()
        orchestrator = make_orchestrator([make_backend("a")])
        orchestrator.context_store = ContextStore(persistence=store)
        orchestrator.persistence = store
        loop_thread = threading.get_ident()

        snippet, _ = await orchestrator.generate_code(ctx, "write it")
        orchestrator.record_feedback(snippet.id, 5)
        await orchestrator.aclose()

        assert set(store.threads) == {"list_snippets", "save_snippet", "save_feedback"}
        assert loop_thread not in store.threads.values()
