"""Orchestrator: one request/response cycle from prompt to validated snippet."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Mapping

from codeweave.backends.base import BackendHandle
from codeweave.backends.registry import BackendRegistry
from codeweave.backends.template_backend import TemplateBackend
from codeweave.context.keywords import extract_keywords
from codeweave.context.store import ContextStore
from codeweave.core.cancellation import CancellationToken
from codeweave.core.config import (
    EngineConfig,
    ProjectConfigProvider,
    StaticProjectConfigProvider,
    load_config,
)
from codeweave.core.errors import BackendRequestError, CodeWeaveError, GenerationCancelledError
from codeweave.core.models import (
    REVISION_MODES,
    CommandContext,
    ConversationEntry,
    FeedbackAck,
    Snippet,
    ValidationReport,
)
from codeweave.core.telemetry import LoggingTelemetrySink, TelemetrySink
from codeweave.feedback.collector import FeedbackCollector
from codeweave.persistence.base import PersistenceStore
from codeweave.persistence.store import SqliteHistoryStore
from codeweave.selector.engine import HealthStatus, ModelSelector
from codeweave.validation.pipeline import ValidationPipeline

logger = logging.getLogger(__name__)

DEFAULT_GENERATION_TIMEOUT = 60.0


class Orchestrator:
    """Composes selection, generation, validation and history.

    All collaborators are injected so that backend sets and stores can be
    swapped per test or per tenant.
    """

    def __init__(
        self,
        registry: BackendRegistry,
        selector: ModelSelector,
        context_store: ContextStore,
        pipeline: ValidationPipeline,
        feedback: FeedbackCollector,
        project_configs: ProjectConfigProvider | None = None,
        telemetry: TelemetrySink | None = None,
        generation_timeout: float = DEFAULT_GENERATION_TIMEOUT,
        persistence: PersistenceStore | None = None,
    ) -> None:
        self.registry = registry
        self.selector = selector
        self.context_store = context_store
        self.pipeline = pipeline
        self.feedback = feedback
        self.project_configs = project_configs or StaticProjectConfigProvider()
        self.telemetry = telemetry or LoggingTelemetrySink()
        self.generation_timeout = generation_timeout
        self.persistence = persistence

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate_code(
        self,
        ctx: CommandContext,
        prompt: str,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> tuple[Snippet, ValidationReport]:
        """Generate, record and validate one snippet for *prompt*.

        The snippet is recorded only once the backend has finished.  Firing
        *cancel_token* before then records nothing; firing it during
        validation keeps the recorded snippet and aborts validation.  Both
        raise :class:`GenerationCancelledError`.
        """
        token = cancel_token or CancellationToken()
        if not ctx.keywords:
            keywords = extract_keywords(prompt)
            if keywords:
                ctx = ctx.derive(keywords=keywords)
        self.context_store.put_context(ctx)
        project = self.project_configs.get(ctx.project_id)
        await asyncio.to_thread(self.context_store.hydrate, ctx.project_id)

        if ctx.generation_mode in REVISION_MODES and ctx.parent_snippet_id is None:
            latest = self.context_store.latest_snippet(ctx.project_id, ctx.file_id)
            if latest is not None:
                ctx = ctx.derive(parent_snippet_id=latest.id)

        fields: dict[str, Any] = {
            "session": ctx.session_key,
            "project": ctx.project_id,
            "mode": ctx.generation_mode.value,
            "language": ctx.target_language.value,
        }
        self._emit("code_generation_started", fields)

        snippet: Snippet | None = None
        try:
            backend = await token.guard(self.selector.select(ctx, project))
            fields["backend"] = backend.name
            self._emit("backend_selected", fields)

            snippets = await token.guard(backend.generate(prompt, ctx, self.generation_timeout))
            if not snippets:
                raise BackendRequestError(f"{backend.name} returned no code", backend=backend.name)
            snippet = snippets[0]
            self.context_store.record_snippet(ctx.project_id, ctx.file_id, snippet)
            self._emit("code_generated", {**fields, "snippet_id": snippet.id})

            report = await token.guard(self.pipeline.validate(snippet, project))
        except (GenerationCancelledError, asyncio.CancelledError) as e:
            self._emit_error(
                "code_generation_cancelled",
                e,
                {**fields, "recorded": snippet is not None},
            )
            raise
        except CodeWeaveError as e:
            self._emit_error("code_generation_failed", e, {**fields, "kind": e.kind})
            raise

        annotated = self.context_store.annotate_snippet(
            snippet.id, report.security_warnings, report.quality_score
        ) or snippet.annotated(report.security_warnings, report.quality_score)
        self.context_store.append_conversation(ctx.session_key, prompt, annotated.id)

        self._emit(
            "code_validated",
            {
                **fields,
                "snippet_id": annotated.id,
                "quality_score": report.quality_score,
                "issues": len(report.issues),
                "incomplete": len(report.incomplete_stages),
            },
        )
        return annotated, report

    async def select_backend(self, ctx: CommandContext) -> BackendHandle:
        return await self.selector.select(ctx, self.project_configs.get(ctx.project_id))

    # ------------------------------------------------------------------
    # Feedback and history
    # ------------------------------------------------------------------

    def record_feedback(
        self,
        snippet_id: str,
        rating: int,
        free_text: str = "",
        user_id: str = "",
    ) -> FeedbackAck:
        ack = self.feedback.submit(snippet_id, rating, free_text, user_id)
        self._emit(
            "code_feedback_submitted",
            {"snippet_id": snippet_id, "rating": rating, "accepted": ack.accepted},
        )
        return ack

    def flush_feedback(self) -> int:
        """Write pending feedback to the persistence store, if any."""
        if self.persistence is None:
            return 0
        return self.feedback.flush(self.persistence)

    def get_history(self, project_id: str, file_id: str | None = None) -> tuple[Snippet, ...]:
        self.context_store.hydrate(project_id)
        return self.context_store.history(project_id, file_id)

    def conversation(self, session_key: str) -> tuple[ConversationEntry, ...]:
        return self.context_store.conversation(session_key)

    def health_snapshot(self) -> dict[str, HealthStatus]:
        return self.selector.health_snapshot()

    async def aclose(self) -> None:
        """Flush feedback, finish queued writes and close backend clients."""
        await asyncio.to_thread(self.flush_feedback)
        await asyncio.to_thread(self.context_store.close)
        for backend in self.registry.all():
            aclose = getattr(backend, "aclose", None)
            if aclose is not None:
                await aclose()

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    def _emit(self, name: str, fields: Mapping[str, Any]) -> None:
        try:
            self.telemetry.log_event(name, dict(fields))
        except Exception:
            logger.warning("Telemetry sink failed on %s", name, exc_info=True)

    def _emit_error(self, name: str, err: BaseException, fields: Mapping[str, Any]) -> None:
        try:
            self.telemetry.log_error(name, err, dict(fields))
        except Exception:
            logger.warning("Telemetry sink failed on %s", name, exc_info=True)


def build_orchestrator(
    config: EngineConfig | None = None,
    project_path: Path | None = None,
    *,
    registry: BackendRegistry | None = None,
    telemetry: TelemetrySink | None = None,
) -> Orchestrator:
    """Wire an :class:`Orchestrator` from configuration.

    With no ``[[backends]]`` configured the offline template backend is
    registered so the engine always has something to select.
    """
    if config is None:
        config = load_config(project_path)
    telemetry = telemetry or LoggingTelemetrySink()

    if registry is None:
        registry = BackendRegistry.from_specs(config.backends)
        if not len(registry):
            registry.register(TemplateBackend())

    persistence: PersistenceStore | None = None
    if config.persistence.enabled:
        persistence = SqliteHistoryStore(project_path, encrypt=config.persistence.encrypt)

    return Orchestrator(
        registry=registry,
        selector=ModelSelector(
            registry,
            health_check_timeout=config.selector.health_check_timeout,
            health_cache_ttl=config.selector.health_cache_ttl,
        ),
        context_store=ContextStore(
            conversation_cap=config.context.conversation_cap,
            persistence=persistence,
        ),
        pipeline=ValidationPipeline.from_config(config.validation, telemetry),
        feedback=FeedbackCollector(max_pending=config.feedback.max_pending),
        project_configs=StaticProjectConfigProvider(config.projects),
        telemetry=telemetry,
        generation_timeout=config.generation.timeout,
        persistence=persistence,
    )
