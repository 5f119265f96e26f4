"""Keyword extraction from free-text prompts.

Keywords feed the prompt builder ("Inferred keywords: ...") and end up as
snippet tags, so the heuristic favours names a developer would search for:
capitalised words (component or type names) and common programming terms.
"""

from __future__ import annotations

import re

MAX_KEYWORDS = 5
MIN_WORD_LENGTH = 4

PROGRAMMING_TERMS = frozenset({
    "function",
    "class",
    "interface",
    "async",
    "await",
    "component",
    "service",
    "database",
    "route",
    "controller",
    "model",
    "test",
    "refactor",
})

_NON_WORD = re.compile(r"[^A-Za-z0-9]")


def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> tuple[str, ...]:
    """Return up to *limit* keywords from *text*, in order of appearance."""
    found: dict[str, None] = {}
    for raw in text.split():
        word = _NON_WORD.sub("", raw)
        if len(word) < MIN_WORD_LENGTH:
            continue
        if word.lower() in PROGRAMMING_TERMS:
            found.setdefault(word.lower(), None)
        elif word[0].isupper():
            found.setdefault(word, None)
        if len(found) >= limit:
            break
    return tuple(found)
