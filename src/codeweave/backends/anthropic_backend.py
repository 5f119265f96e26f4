"""Backend for Anthropic's Messages API."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Iterable

from codeweave.backends.base import BackendHandle
from codeweave.backends.prompting import build_prompt
from codeweave.core.errors import BackendRequestError, BackendTimeoutError, RateLimitedError
from codeweave.core.models import BackendKind, CommandContext

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


def _import_anthropic():
    try:
        import anthropic
    except ImportError:
        raise ImportError(
            "The anthropic backend requires the anthropic package. "
            "Install with: pip install codeweave[ai]"
        )
    return anthropic


def _retry_after(response: Any) -> float | None:
    headers = getattr(response, "headers", None) or {}
    value = headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


class AnthropicBackend(BackendHandle):
    """Streams completions from Claude models."""

    kind = BackendKind.ANTHROPIC

    def __init__(
        self,
        name: str,
        *,
        model: str = DEFAULT_MODEL,
        tags: Iterable[str] = ("high-reasoning", "general"),
        default_temperature: float = 0.7,
        max_output_tokens: int = 4096,
        api_key: str | None = None,
        client: Any | None = None,
    ) -> None:
        super().__init__(
            name,
            model=model or DEFAULT_MODEL,
            tags=tags,
            default_temperature=default_temperature,
            max_output_tokens=max_output_tokens,
        )
        self.api_key = api_key
        self._client = client

    def _get_client(self):
        """Lazy-initialize the async Anthropic client."""
        if self._client is None:
            anthropic = _import_anthropic()
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key)
        return self._client

    async def stream(self, prompt: str, ctx: CommandContext) -> AsyncIterator[str]:
        anthropic = _import_anthropic()
        client = self._get_client()
        system, user = build_prompt(prompt, ctx)
        params = self.generation_params(ctx)

        try:
            async with client.messages.stream(
                model=self.model,
                max_tokens=params.max_tokens,
                temperature=params.temperature,
                system=system,
                messages=[{"role": "user", "content": user}],
            ) as response:
                async for text in response.text_stream:
                    yield text
        except anthropic.RateLimitError as e:
            raise RateLimitedError(
                f"{self.name} is rate limited",
                backend=self.name,
                retry_after=_retry_after(getattr(e, "response", None)),
            ) from e
        except anthropic.APITimeoutError as e:
            raise BackendTimeoutError(f"{self.name} request timed out", backend=self.name) from e
        except anthropic.APIError as e:
            raise BackendRequestError(f"{self.name} request failed: {e}", backend=self.name) from e

    async def _probe(self) -> bool:
        await self._get_client().models.list(limit=1)
        return True
