"""Syntax stage: parse failures and unbalanced delimiters."""

from __future__ import annotations

import ast

from codeweave.core.models import (
    C_FAMILY,
    JS_FAMILY,
    Language,
    ProjectConfig,
    Severity,
    Snippet,
    StageName,
    ValidationFinding,
)
from codeweave.validation.stages.base import ValidationStage

_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {v: k for k, v in _OPENERS.items()}

# Languages whose delimiters are not reliably balanced in valid source
_UNCHECKED = {Language.YAML, Language.HTML, Language.SHELL, Language.OTHER}

_LINE_COMMENTS: dict[Language, tuple[str, ...]] = {
    Language.RUBY: ("#",),
    Language.PHP: ("//", "#"),
    Language.SQL: ("--",),
    Language.CSS: (),
}
_BLOCK_COMMENTS = C_FAMILY | {Language.CSS, Language.SQL}

_REGEX_PRECEDERS = set("(,=:[!&|?{};")
_REGEX_KEYWORDS = {"return", "typeof", "case", "yield"}


def check_balance(source: str, language: Language) -> tuple[str, int] | None:
    """Scan *source* for the first delimiter problem.

    Returns ``(message, line)`` or None.  String literals and comments are
    skipped.
    """
    stack: list[tuple[str, int]] = []
    line = 1
    i = 0
    n = len(source)
    block_comments = language in _BLOCK_COMMENTS
    line_comments = _LINE_COMMENTS.get(language, ("//",))

    while i < n:
        ch = source[i]
        nxt = source[i + 1] if i + 1 < n else ""

        if ch == "\n":
            line += 1
            i += 1
            continue

        # Comments
        if any(source.startswith(marker, i) for marker in line_comments):
            end = source.find("\n", i)
            i = n if end == -1 else end
            continue
        if block_comments and ch == "/" and nxt == "*":
            end = source.find("*/", i + 2)
            if end == -1:
                return "Unterminated block comment", line
            line += source.count("\n", i, end)
            i = end + 2
            continue

        # String literals
        if ch in ("'", '"', "`"):
            if ch == "'" and language == Language.RUST and not _is_rust_char(source, i):
                i += 1
                continue
            i, line = _skip_string(source, i, line, multiline=(ch == "`"))
            continue

        if ch == "/" and language in JS_FAMILY and _starts_regex(source, i):
            i = _skip_regex(source, i)
            continue

        if ch in _OPENERS:
            stack.append((ch, line))
        elif ch in _CLOSERS:
            if not stack:
                return f"Unexpected closing '{ch}'", line
            opener, _ = stack.pop()
            if _OPENERS[opener] != ch:
                return f"Mismatched '{opener}' closed by '{ch}'", line
        i += 1

    if stack:
        opener, opened_at = stack[-1]
        return f"Unclosed '{opener}'", opened_at
    return None


def _skip_string(source: str, start: int, line: int, *, multiline: bool) -> tuple[int, int]:
    quote = source[start]
    i = start + 1
    n = len(source)
    while i < n:
        ch = source[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "\n":
            if not multiline:
                # Unterminated single-line string; resume on the next line
                return i, line
            line += 1
        elif ch == quote:
            return i + 1, line
        i += 1
    return n, line


def _starts_regex(source: str, i: int) -> bool:
    # A slash opens a regex literal where an expression may start
    j = i - 1
    while j >= 0 and source[j].isspace():
        j -= 1
    if j < 0 or source[j] in _REGEX_PRECEDERS:
        return True
    end = j + 1
    while j >= 0 and (source[j].isalnum() or source[j] in "_$"):
        j -= 1
    return source[j + 1:end] in _REGEX_KEYWORDS


def _skip_regex(source: str, start: int) -> int:
    """Return the index just past a ``/pattern/flags`` literal."""
    i = start + 1
    n = len(source)
    in_class = False
    while i < n:
        ch = source[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "\n":
            # Not a regex after all; treat the slash as an operator
            return start + 1
        if ch == "[":
            in_class = True
        elif ch == "]":
            in_class = False
        elif ch == "/" and not in_class:
            i += 1
            while i < n and source[i].isalpha():
                i += 1
            return i
        i += 1
    return start + 1


def _is_rust_char(source: str, i: int) -> bool:
    # 'x' or '\n' style literals; anything else is a lifetime
    if source.startswith("\\", i + 1):
        return source.find("'", i + 2) in (i + 3, i + 4)
    return i + 2 < len(source) and source[i + 2] == "'"


class SyntaxStage(ValidationStage):
    """Detect gross structural errors.  Reports at most one finding."""

    stage = StageName.SYNTAX
    severity = Severity.ERROR
    description = "Parse failures and unbalanced delimiters"

    def run(self, snippet: Snippet, project_config: ProjectConfig) -> list[ValidationFinding]:
        source = snippet.content
        if not source.strip():
            return []

        if snippet.language == Language.PYTHON:
            try:
                ast.parse(source)
            except SyntaxError as e:
                return [self._make_finding(
                    f"Python parse error: {e.msg}",
                    rule_id="parse-error",
                    line=e.lineno,
                )]
            return []

        if snippet.language in _UNCHECKED:
            return []

        problem = check_balance(source, snippet.language)
        if problem is None:
            return []
        message, line = problem
        return [self._make_finding(message, rule_id="unbalanced-delimiters", line=line)]
