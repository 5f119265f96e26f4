"""Backend for OpenAI-compatible chat completion endpoints.

Works with any server exposing ``POST /chat/completions`` with server-sent
event streaming (OpenAI, Groq, OpenRouter, vLLM, Ollama's compatibility
layer, ...).
"""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator, Iterable

import httpx

from codeweave.backends.base import BackendHandle
from codeweave.backends.prompting import build_prompt
from codeweave.core.errors import BackendRequestError, BackendTimeoutError, RateLimitedError
from codeweave.core.models import BackendKind, CommandContext

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o"

SSE_DONE = object()


def parse_sse_line(line: str) -> str | object | None:
    """Extract the text delta from one SSE line.

    Returns :data:`SSE_DONE` on the terminating ``[DONE]`` marker and ``None`` for
    lines that carry no text.
    """
    line = line.strip()
    if not line or line.startswith(":"):
        return None
    if line.startswith("data:"):
        line = line[5:].strip()
    if line == "[DONE]":
        return SSE_DONE

    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return None

    choices = data.get("choices") if isinstance(data, dict) else None
    if not choices:
        return None
    choice = choices[0]
    delta = choice.get("delta") or choice.get("message") or {}
    content = delta.get("content") if isinstance(delta, dict) else None
    if content is None:
        content = choice.get("text")
    return content or None


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


class OpenAICompatibleBackend(BackendHandle):
    """Streams chat completions over HTTP with httpx."""

    kind = BackendKind.OPENAI_COMPATIBLE

    def __init__(
        self,
        name: str,
        *,
        model: str = DEFAULT_MODEL,
        tags: Iterable[str] = ("general",),
        default_temperature: float = 0.7,
        max_output_tokens: int = 4096,
        base_url: str = DEFAULT_BASE_URL,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            name,
            model=model or DEFAULT_MODEL,
            tags=tags,
            default_temperature=default_temperature,
            max_output_tokens=max_output_tokens,
        )
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.api_key = api_key
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=httpx.Timeout(120.0, connect=5.0),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def stream(self, prompt: str, ctx: CommandContext) -> AsyncIterator[str]:
        system, user = build_prompt(prompt, ctx)
        params = self.generation_params(ctx)
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": params.temperature,
            "max_tokens": params.max_tokens,
            "stream": True,
        }

        try:
            async with self._get_client().stream(
                "POST", "/chat/completions", json=payload
            ) as response:
                if response.status_code == 429:
                    raise RateLimitedError(
                        f"{self.name} is rate limited",
                        backend=self.name,
                        retry_after=_retry_after(response),
                    )
                if response.status_code >= 400:
                    await response.aread()
                    raise BackendRequestError(
                        f"{self.name} returned HTTP {response.status_code}",
                        backend=self.name,
                    )
                async for line in response.aiter_lines():
                    delta = parse_sse_line(line)
                    if delta is SSE_DONE:
                        break
                    if delta:
                        yield delta
        except httpx.TimeoutException as e:
            raise BackendTimeoutError(f"{self.name} request timed out", backend=self.name) from e
        except httpx.HTTPError as e:
            raise BackendRequestError(f"{self.name} request failed: {e}", backend=self.name) from e

    async def _probe(self) -> bool:
        response = await self._get_client().get("/models")
        return response.is_success
