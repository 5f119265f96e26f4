"""Base class shared by every model backend."""

from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Iterable

from codeweave.core.errors import BackendTimeoutError
from codeweave.core.models import BackendKind, CommandContext, Snippet

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```([\w+#.-]*)[ \t]*\r?\n(.*?)```", re.DOTALL)
_MAX_DESCRIPTION = 280


@dataclass(frozen=True)
class GenerationParams:
    temperature: float
    max_tokens: int


class BackendHandle(ABC):
    """Uniform contract around one model provider.

    Concrete backends implement :meth:`stream` and :meth:`_probe`; the base
    class turns the stream into :class:`Snippet` objects under a deadline
    and bounds health checks by a timeout.
    """

    kind: BackendKind = BackendKind.LOCAL_TEMPLATE

    def __init__(
        self,
        name: str,
        *,
        model: str = "",
        tags: Iterable[str] = (),
        default_temperature: float = 0.7,
        max_output_tokens: int = 4096,
    ) -> None:
        if not name:
            raise ValueError("backend name must not be empty")
        self.name = name
        self.model = model
        self.tags = frozenset(tags)
        self.default_temperature = default_temperature
        self.max_output_tokens = max_output_tokens

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r} model={self.model!r}>"

    # ------------------------------------------------------------------
    # Provider hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def stream(self, prompt: str, ctx: CommandContext) -> AsyncIterator[str]:
        """Yield generated text chunks for *prompt*.

        Closing the iterator must abort the underlying request.
        """
        ...

    @abstractmethod
    async def _probe(self) -> bool:
        """Cheap liveness call against the provider."""
        ...

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(
        self,
        prompt: str,
        ctx: CommandContext,
        timeout: float,
    ) -> list[Snippet]:
        """Generate snippets for *prompt*, giving up after *timeout* seconds."""
        try:
            text = await asyncio.wait_for(self._collect(prompt, ctx), timeout)
        except asyncio.TimeoutError:
            raise BackendTimeoutError(
                f"{self.name} did not finish within {timeout:.1f}s",
                backend=self.name,
            ) from None
        return self._build_snippets(text, ctx)

    async def health_check(self, timeout: float) -> bool:
        """Return whether the provider answers within *timeout* seconds.

        A probe that times out reports unhealthy.  Probe errors propagate.
        """
        try:
            return bool(await asyncio.wait_for(self._probe(), timeout))
        except asyncio.TimeoutError:
            logger.debug("Health probe for %s timed out after %.2fs", self.name, timeout)
            return False

    def generation_params(self, ctx: CommandContext) -> GenerationParams:
        return GenerationParams(
            temperature=self.default_temperature if ctx.temperature is None else ctx.temperature,
            max_tokens=min(ctx.max_tokens, self.max_output_tokens),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _collect(self, prompt: str, ctx: CommandContext) -> str:
        chunks: list[str] = []
        stream = self.stream(prompt, ctx)
        try:
            async for chunk in stream:
                chunks.append(chunk)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        return "".join(chunks)

    def _build_snippets(self, text: str, ctx: CommandContext) -> list[Snippet]:
        """Split model output into one snippet per fenced code block."""
        if not text.strip():
            return []

        blocks = [m.group(2).strip("\n") for m in _FENCE_RE.finditer(text)]
        prose = _FENCE_RE.sub(" ", text)
        description = " ".join(prose.split())[:_MAX_DESCRIPTION]
        if not description:
            description = f"{ctx.generation_mode.value} output from {self.name}"

        if not blocks:
            blocks = [text.strip()]

        tags = _unique(
            [*ctx.keywords, ctx.generation_mode.value, ctx.target_language.value, self.name]
        )
        return [
            Snippet(
                content=block,
                language=ctx.target_language,
                framework=ctx.target_framework,
                description=description,
                parent_id=ctx.parent_snippet_id,
                tags=tags,
                backend=self.name,
            )
            for block in blocks
            if block.strip()
        ]


def _unique(items: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for item in items:
        if item:
            seen.setdefault(item, None)
    return tuple(seen)
