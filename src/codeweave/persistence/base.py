"""Persistence protocol for snippet history and feedback."""

from __future__ import annotations

from typing import Protocol

from codeweave.core.models import FeedbackRecord, Snippet


class PersistenceStore(Protocol):
    def save_snippet(self, snippet: Snippet, project_id: str, file_id: str | None = None) -> str: ...

    def list_snippets(self, project_id: str, *, limit: int | None = None) -> list[tuple[str | None, Snippet]]: ...

    def save_feedback(self, records: list[FeedbackRecord]) -> int: ...

    def list_feedback(self, snippet_id: str | None = None, *, limit: int = 100) -> list[FeedbackRecord]: ...
