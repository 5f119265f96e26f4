"""Tests for the OpenAI-compatible backend using httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from codeweave.backends.openai_backend import SSE_DONE, OpenAICompatibleBackend, parse_sse_line
from codeweave.core.errors import BackendRequestError, BackendTimeoutError, RateLimitedError


def _sse(*deltas: str) -> bytes:
    lines = []
    for delta in deltas:
        payload = {"choices": [{"delta": {"content": delta}}]}
        lines.append(f"data: {json.dumps(payload)}\n\n")
    lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


class TestParseSseLine:
    def test_delta_content(self):
        line = 'data: {"choices": [{"delta": {"content": "hi"}}]}'
        assert parse_sse_line(line) == "hi"

    def test_done_marker(self):
        assert parse_sse_line("data: [DONE]") is SSE_DONE

    @pytest.mark.parametrize(
        "line",
        ["", ": keep-alive", "data: not json", 'data: {"choices": []}', 'data: {"choices": [{"delta": {}}]}'],
    )
    def test_lines_without_text(self, line):
        assert parse_sse_line(line) is None

    def test_non_streaming_message_shape(self):
        line = '{"choices": [{"message": {"content": "full"}}]}'
        assert parse_sse_line(line) == "full"


class TestOpenAICompatibleBackend:
    @pytest.mark.asyncio
    async def test_streams_completion(self, ctx):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, content=_sse("```typescript\n", "const x = 1;\n", "```\nA constant."))

        backend = OpenAICompatibleBackend(
            "oai",
            api_key="sk-test",
            base_url="https://llm.example/v1/",
            transport=httpx.MockTransport(handler),
        )
        try:
            (snippet,) = await backend.generate("make a constant", ctx, timeout=2.0)
        finally:
            await backend.aclose()

        assert snippet.content == "const x = 1;"
        assert snippet.description == "A constant."
        assert seen["url"] == "https://llm.example/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["stream"] is True
        assert seen["body"]["max_tokens"] == ctx.max_tokens
        assert [m["role"] for m in seen["body"]["messages"]] == ["system", "user"]

    @pytest.mark.asyncio
    async def test_rate_limited(self, ctx):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(429, headers={"retry-after": "7"})
        )
        backend = OpenAICompatibleBackend("oai", transport=transport)
        with pytest.raises(RateLimitedError) as exc_info:
            await backend.generate("x", ctx, timeout=2.0)
        assert exc_info.value.retry_after == 7.0
        await backend.aclose()

    @pytest.mark.asyncio
    async def test_http_error(self, ctx):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
        backend = OpenAICompatibleBackend("oai", transport=transport)
        with pytest.raises(BackendRequestError, match="HTTP 500"):
            await backend.generate("x", ctx, timeout=2.0)
        await backend.aclose()

    @pytest.mark.asyncio
    async def test_transport_timeout(self, ctx):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        backend = OpenAICompatibleBackend("oai", transport=httpx.MockTransport(handler))
        with pytest.raises(BackendTimeoutError):
            await backend.generate("x", ctx, timeout=2.0)
        await backend.aclose()

    @pytest.mark.asyncio
    async def test_connection_error(self, ctx):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        backend = OpenAICompatibleBackend("oai", transport=httpx.MockTransport(handler))
        with pytest.raises(BackendRequestError):
            await backend.generate("x", ctx, timeout=2.0)
        await backend.aclose()

    @pytest.mark.asyncio
    async def test_health_probe(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path.endswith("/models")
            return httpx.Response(200, json={"data": []})

        backend = OpenAICompatibleBackend("oai", transport=httpx.MockTransport(handler))
        assert await backend.health_check(1.0) is True
        await backend.aclose()

    @pytest.mark.asyncio
    async def test_health_probe_failure_status(self):
        backend = OpenAICompatibleBackend(
            "oai", transport=httpx.MockTransport(lambda request: httpx.Response(503))
        )
        assert await backend.health_check(1.0) is False
        await backend.aclose()
