"""Offline backend that renders a deterministic scaffold.

It needs no network access, so it is always healthy.  That makes it the
fallback of last resort and a stable stand-in for tests and demos.
"""

from __future__ import annotations

import asyncio
import keyword
import re
from typing import AsyncIterator, Iterable

from codeweave.backends.base import BackendHandle
from codeweave.core.models import BackendKind, CommandContext, Language

_CHUNK_SIZE = 64
_WORD_RE = re.compile(r"[A-Za-z][A-Za-z0-9]*")

_JS_RESERVED = frozenset({
    "await", "break", "case", "catch", "class", "const", "continue", "debugger",
    "default", "delete", "do", "else", "enum", "export", "extends", "false",
    "finally", "for", "function", "if", "implements", "import", "in", "instanceof",
    "interface", "let", "new", "null", "package", "private", "protected", "public",
    "return", "static", "super", "switch", "this", "throw", "true", "try",
    "typeof", "var", "void", "while", "with", "yield",
})


def _words(instruction: str) -> list[str]:
    words = [w.lower() for w in _WORD_RE.findall(instruction)]
    return words[:4] or ["generated", "task"]


def _snake(instruction: str) -> str:
    name = "_".join(_words(instruction))
    return f"{name}_" if keyword.iskeyword(name) else name


def _camel(instruction: str) -> str:
    first, *rest = _words(instruction)
    name = first + "".join(w.capitalize() for w in rest)
    return f"{name}_" if name in _JS_RESERVED else name


def _pascal(instruction: str) -> str:
    return "".join(w.capitalize() for w in _words(instruction))


def render_scaffold(instruction: str, ctx: CommandContext) -> str:
    """Build a small, clean scaffold for *instruction* in the target language."""
    summary = " ".join(instruction.split())[:120].replace('"', "'")
    lang = ctx.target_language

    if lang == Language.PYTHON:
        docstring = summary.replace("\\", "\\\\")
        return (
            f"def {_snake(instruction)}(payload: dict) -> dict:\n"
            f'    """{docstring}"""\n'
            '    return {"status": "ok", "payload": payload}\n'
        )
    if lang == Language.TYPESCRIPT:
        return (
            f"export interface {_pascal(instruction)}Result {{\n"
            "  status: string;\n"
            "  payload: Record<string, unknown>;\n"
            "}\n\n"
            f"// {summary}\n"
            f"export function {_camel(instruction)}(\n"
            "  payload: Record<string, unknown>,\n"
            f"): {_pascal(instruction)}Result {{\n"
            '  return { status: "ok", payload };\n'
            "}\n"
        )
    if lang == Language.JAVASCRIPT:
        return (
            f"// {summary}\n"
            f"export function {_camel(instruction)}(payload) {{\n"
            '  return { status: "ok", payload };\n'
            "}\n"
        )
    if lang == Language.GO:
        return (
            f"// {_pascal(instruction)} {summary}\n"
            f"func {_pascal(instruction)}(payload map[string]any) map[string]any {{\n"
            '\treturn map[string]any{"status": "ok", "payload": payload}\n'
            "}\n"
        )
    if lang == Language.SQL:
        return f"-- {summary}\nSELECT 1;\n"
    if lang == Language.SHELL:
        return f"#!/usr/bin/env bash\n# {summary}\nset -euo pipefail\n"
    return f"# {summary}\n"


class TemplateBackend(BackendHandle):
    """Deterministic, always-available backend."""

    kind = BackendKind.LOCAL_TEMPLATE

    def __init__(
        self,
        name: str = "local-template",
        *,
        model: str = "scaffold-v1",
        tags: Iterable[str] = ("general", "fast"),
        default_temperature: float = 0.0,
        max_output_tokens: int = 4096,
        delay: float = 0.0,
    ) -> None:
        super().__init__(
            name,
            model=model,
            tags=tags,
            default_temperature=default_temperature,
            max_output_tokens=max_output_tokens,
        )
        self.delay = delay

    async def stream(self, prompt: str, ctx: CommandContext) -> AsyncIterator[str]:
        if self.delay:
            await asyncio.sleep(self.delay)
        lang = ctx.target_language.value
        text = (
            f"```{lang}\n{render_scaffold(prompt, ctx)}```\n"
            f"Scaffold for: {' '.join(prompt.split())[:200]}\n"
        )
        for start in range(0, len(text), _CHUNK_SIZE):
            yield text[start:start + _CHUNK_SIZE]
            await asyncio.sleep(0)

    async def _probe(self) -> bool:
        return True
