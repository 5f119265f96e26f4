"""In-memory context, conversation and snippet history store.

The store is the source of truth for the lifetime of the process.  All
mutations of a given key are serialised through a per-key lock; operations
on different keys never contend with each other.  An optional
:class:`~codeweave.persistence.base.PersistenceStore` receives every recorded
or annotated snippet on a background worker thread so callers never wait on
disk I/O.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

from codeweave.core.models import CommandContext, ConversationEntry, Snippet, VulnerabilityClass
from codeweave.persistence.base import PersistenceStore

logger = logging.getLogger(__name__)

DEFAULT_CONVERSATION_CAP = 10


class _KeyedLocks:
    """Lazily created lock per key."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Any, threading.Lock] = {}

    def __call__(self, key: Any) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock


class _HistoryEntry:
    __slots__ = ("file_id", "snippet")

    def __init__(self, file_id: str | None, snippet: Snippet) -> None:
        self.file_id = file_id
        self.snippet = snippet


class ContextStore:
    """Per-session contexts and conversation logs, per-project snippet history."""

    def __init__(
        self,
        conversation_cap: int = DEFAULT_CONVERSATION_CAP,
        persistence: PersistenceStore | None = None,
        default_project_id: str = "default_project",
    ) -> None:
        if conversation_cap <= 0:
            raise ValueError("conversation_cap must be positive")
        self.conversation_cap = conversation_cap
        self.default_project_id = default_project_id
        self._persistence = persistence

        self._session_locks = _KeyedLocks()
        self._project_locks = _KeyedLocks()
        self._index_lock = threading.Lock()

        self._contexts: dict[str, CommandContext] = {}
        self._conversations: dict[str, deque[ConversationEntry]] = {}
        self._history: dict[str, list[_HistoryEntry]] = {}
        # snippet id -> project id, for annotation lookups
        self._snippet_projects: dict[str, str] = {}
        self._hydrated: set[str] = set()

        self._writer: ThreadPoolExecutor | None = None
        if persistence is not None:
            self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="codeweave-persist")

    # ------------------------------------------------------------------
    # Contexts
    # ------------------------------------------------------------------

    def get_context(self, session_key: str) -> CommandContext:
        """Return the session's context, creating defaults for an unseen key."""
        with self._session_locks(session_key):
            ctx = self._contexts.get(session_key)
            if ctx is None:
                ctx = CommandContext.default(session_key, self.default_project_id)
                self._contexts[session_key] = ctx
            return ctx

    def put_context(self, ctx: CommandContext) -> None:
        with self._session_locks(ctx.session_key):
            self._contexts[ctx.session_key] = ctx

    def update_context(self, session_key: str, **changes: Any) -> CommandContext:
        """Derive a new context from the current one and store it."""
        with self._session_locks(session_key):
            current = self._contexts.get(session_key) or CommandContext.default(
                session_key, self.default_project_id
            )
            updated = current.derive(**changes)
            self._contexts[session_key] = updated
        logger.debug("Context updated for %s: %s", session_key, sorted(changes))
        return updated

    # ------------------------------------------------------------------
    # Conversation log
    # ------------------------------------------------------------------

    def append_conversation(
        self,
        session_key: str,
        prompt: str,
        snippet_id: str | None = None,
    ) -> ConversationEntry:
        entry = ConversationEntry(session_key=session_key, prompt=prompt, snippet_id=snippet_id)
        with self._session_locks(session_key):
            log = self._conversations.get(session_key)
            if log is None:
                log = self._conversations[session_key] = deque(maxlen=self.conversation_cap)
            log.append(entry)
        return entry

    def conversation(self, session_key: str) -> tuple[ConversationEntry, ...]:
        """Entries for *session_key*, oldest first."""
        with self._session_locks(session_key):
            return tuple(self._conversations.get(session_key, ()))

    # ------------------------------------------------------------------
    # Snippet history
    # ------------------------------------------------------------------

    def record_snippet(
        self,
        project_id: str,
        file_id: str | None,
        snippet: Snippet,
    ) -> None:
        """Append *snippet* to the project's history."""
        with self._index_lock:
            if snippet.id in self._snippet_projects:
                raise ValueError(f"Snippet {snippet.id} is already recorded")
            self._snippet_projects[snippet.id] = project_id

        with self._project_locks(project_id):
            self._history.setdefault(project_id, []).append(_HistoryEntry(file_id, snippet))

        logger.debug("Snippet %s recorded for %s/%s", snippet.id, project_id, file_id or "-")
        self._persist(project_id, file_id, snippet)

    def annotate_snippet(
        self,
        snippet_id: str,
        security_warnings: list[VulnerabilityClass] | tuple[VulnerabilityClass, ...],
        quality_score: int,
    ) -> Snippet | None:
        """Replace a recorded snippet with its annotated copy, in place."""
        with self._index_lock:
            project_id = self._snippet_projects.get(snippet_id)
        if project_id is None:
            return None

        with self._project_locks(project_id):
            for entry in self._history.get(project_id, []):
                if entry.snippet.id == snippet_id:
                    entry.snippet = entry.snippet.annotated(security_warnings, quality_score)
                    annotated, file_id = entry.snippet, entry.file_id
                    break
            else:
                return None

        self._persist(project_id, file_id, annotated)
        return annotated

    def history(self, project_id: str, file_id: str | None = None) -> tuple[Snippet, ...]:
        """Snippets recorded for a project (optionally one file), oldest first."""
        with self._project_locks(project_id):
            entries = self._history.get(project_id, [])
            if file_id is None:
                return tuple(e.snippet for e in entries)
            return tuple(e.snippet for e in entries if e.file_id == file_id)

    def latest_snippet(self, project_id: str, file_id: str | None = None) -> Snippet | None:
        snippets = self.history(project_id, file_id)
        return snippets[-1] if snippets else None

    def get_snippet(self, snippet_id: str) -> Snippet | None:
        with self._index_lock:
            project_id = self._snippet_projects.get(snippet_id)
        if project_id is None:
            return None
        for snippet in self.history(project_id):
            if snippet.id == snippet_id:
                return snippet
        return None

    def hydrate(self, project_id: str) -> int:
        """Merge a project's persisted history into memory, once per project.

        Returns the number of snippets loaded.
        """
        if self._persistence is None:
            return 0
        with self._project_locks(project_id):
            if project_id in self._hydrated:
                return 0
            self._hydrated.add(project_id)
            current = self._history.get(project_id, [])
            known = {e.snippet.id for e in current}
            rows = self._persistence.list_snippets(project_id)
            entries = [
                _HistoryEntry(file_id, snippet)
                for file_id, snippet in rows
                if snippet.id not in known
            ]
            # Persisted snippets predate anything recorded in this process
            self._history[project_id] = entries + current
        with self._index_lock:
            for entry in entries:
                self._snippet_projects.setdefault(entry.snippet.id, project_id)
        logger.debug("Hydrated %d snippet(s) for %s", len(entries), project_id)
        return len(entries)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist(self, project_id: str, file_id: str | None, snippet: Snippet) -> None:
        if self._writer is None or self._persistence is None:
            return
        future = self._writer.submit(self._persistence.save_snippet, snippet, project_id, file_id)
        future.add_done_callback(_log_persist_failure)

    def close(self) -> None:
        """Wait for queued writes and stop the persistence worker."""
        if self._writer is not None:
            self._writer.shutdown(wait=True)
            self._writer = None


def _log_persist_failure(future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        logger.warning("Failed to persist snippet: %s", exc, exc_info=exc)
