"""Shared fixtures: scripted backends, contexts and a wired orchestrator."""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Iterable, Mapping

import pytest

from codeweave.backends.base import BackendHandle
from codeweave.backends.registry import BackendRegistry
from codeweave.context.store import ContextStore
from codeweave.core.config import StaticProjectConfigProvider
from codeweave.core.models import BackendKind, CommandContext, ProjectConfig
from codeweave.engine import Orchestrator
from codeweave.feedback.collector import FeedbackCollector
from codeweave.selector.engine import ModelSelector
from codeweave.validation.pipeline import ValidationPipeline

CLEAN_TS = """\
export interface Greeting {
  message: string;
}

export function greet(name: string): Greeting {
  return { message: `Hello, ${name}` };
}"""


class ScriptedBackend(BackendHandle):
    """Backend whose health, output and latency are set by the test."""

    kind = BackendKind.LOCAL_TEMPLATE

    def __init__(
        self,
        name: str,
        *,
        healthy: bool = True,
        tags: Iterable[str] = ("general",),
        code: str = CLEAN_TS,
        response: str | None = None,
        delay: float = 0.0,
        probe_delay: float = 0.0,
        probe_error: Exception | None = None,
        error: Exception | None = None,
    ) -> None:
        super().__init__(name, model="scripted", tags=tags)
        self.healthy = healthy
        self.code = code
        self.response = response
        self.delay = delay
        self.probe_delay = probe_delay
        self.probe_error = probe_error
        self.error = error
        self.generate_calls = 0
        self.probe_calls = 0
        self.stream_closed = False
        self.started = asyncio.Event()

    async def stream(self, prompt: str, ctx: CommandContext) -> AsyncIterator[str]:
        self.generate_calls += 1
        self.started.set()
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            if self.response is not None:
                text = self.response
            else:
                text = f"```{ctx.target_language.value}\n{self.code}\n```\nAnswer to: {prompt}"
            yield text
        finally:
            self.stream_closed = True

    async def _probe(self) -> bool:
        self.probe_calls += 1
        if self.probe_delay:
            await asyncio.sleep(self.probe_delay)
        if self.probe_error is not None:
            raise self.probe_error
        return self.healthy


class RecordingTelemetry:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []
        self.errors: list[tuple[str, BaseException, dict]] = []

    def log_event(self, name: str, fields: Mapping[str, Any] | None = None) -> None:
        self.events.append((name, dict(fields or {})))

    def log_error(self, name: str, err: BaseException, fields: Mapping[str, Any] | None = None) -> None:
        self.errors.append((name, err, dict(fields or {})))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


@pytest.fixture
def make_backend():
    """Factory for :class:`ScriptedBackend` instances."""
    return ScriptedBackend


@pytest.fixture
def ctx() -> CommandContext:
    return CommandContext(session_key="s1", project_id="proj")


@pytest.fixture
def telemetry() -> RecordingTelemetry:
    return RecordingTelemetry()


@pytest.fixture
def make_orchestrator(telemetry: RecordingTelemetry):
    """Build an orchestrator around the given backends."""

    def _make(
        backends: list[BackendHandle],
        *,
        projects: dict[str, ProjectConfig] | None = None,
        conversation_cap: int = 10,
        pipeline: ValidationPipeline | None = None,
        generation_timeout: float = 5.0,
        health_check_timeout: float = 0.5,
    ) -> Orchestrator:
        registry = BackendRegistry(backends)
        return Orchestrator(
            registry=registry,
            selector=ModelSelector(registry, health_check_timeout=health_check_timeout),
            context_store=ContextStore(conversation_cap=conversation_cap),
            pipeline=pipeline or ValidationPipeline(telemetry=telemetry),
            feedback=FeedbackCollector(max_pending=100),
            project_configs=StaticProjectConfigProvider(projects),
            telemetry=telemetry,
            generation_timeout=generation_timeout,
        )

    return _make
