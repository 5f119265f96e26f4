"""Encrypted SQLite storage for snippet history and feedback.

The database lives at ``{project_root}/.codeweave/history.db``.  Payloads
are Fernet-encrypted before they hit disk and decrypted on read.  Snippet
rows are upserted by id so an annotated snippet replaces its earlier row
without losing its position in the history.  Snippet rows are never deleted.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

from codeweave.core.config import get_data_dir
from codeweave.core.crypto import get_fernet
from codeweave.core.models import FeedbackRecord, Snippet

logger = logging.getLogger(__name__)

DB_FILENAME = "history.db"

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS snippets (
    id          TEXT PRIMARY KEY,
    project_id  TEXT NOT NULL,
    file_id     TEXT,
    payload     BLOB NOT NULL,
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS feedback (
    seq          INTEGER PRIMARY KEY AUTOINCREMENT,
    snippet_id   TEXT NOT NULL,
    payload      BLOB NOT NULL,
    submitted_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_snippets_project ON snippets(project_id, created_at);
CREATE INDEX IF NOT EXISTS idx_feedback_snippet ON feedback(snippet_id);
"""


class SqliteHistoryStore:
    """Thread-safe, encrypted SQLite store.

    Usage::

        store = SqliteHistoryStore(project_path)
        store.save_snippet(snippet, "default_project", "app.tsx")
        rows = store.list_snippets("default_project")
    """

    def __init__(
        self,
        project_path: Path | None = None,
        *,
        encrypt: bool = True,
    ) -> None:
        self._data_dir = get_data_dir(project_path)
        self._db_path = self._data_dir / DB_FILENAME
        self._encrypt = encrypt
        self._fernet: Fernet | None = get_fernet(self._data_dir) if encrypt else None

        self._lock = threading.Lock()
        self._init_db()

    @property
    def db_path(self) -> Path:
        return self._db_path

    # ------------------------------------------------------------------
    # Database bootstrap
    # ------------------------------------------------------------------

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.executescript(_SCHEMA_SQL)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=10)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.row_factory = sqlite3.Row
        return conn

    # ------------------------------------------------------------------
    # Encryption helpers
    # ------------------------------------------------------------------

    def _encode(self, data: dict[str, Any]) -> bytes:
        raw = json.dumps(data).encode("utf-8")
        if self._fernet is not None:
            return self._fernet.encrypt(raw)
        return raw

    def _decode(self, blob: bytes) -> dict[str, Any] | None:
        try:
            raw = self._fernet.decrypt(blob) if self._fernet is not None else blob
            data = json.loads(raw.decode("utf-8"))
        except (InvalidToken, ValueError) as e:
            logger.warning("Skipping unreadable row in %s: %s", self._db_path.name, e)
            return None
        return data if isinstance(data, dict) else None

    # ------------------------------------------------------------------
    # Snippets
    # ------------------------------------------------------------------

    def save_snippet(self, snippet: Snippet, project_id: str, file_id: str | None = None) -> str:
        """Insert or replace a snippet.  Returns the snippet id."""
        payload = self._encode(snippet.to_dict())
        with self._lock, self._connect() as conn:
            conn.execute(
                "INSERT INTO snippets (id, project_id, file_id, payload, created_at) "
                "VALUES (?, ?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET payload = excluded.payload",
                (snippet.id, project_id, file_id, payload, snippet.created_at.isoformat()),
            )
        return snippet.id

    def list_snippets(
        self,
        project_id: str,
        *,
        limit: int | None = None,
    ) -> list[tuple[str | None, Snippet]]:
        """Return ``(file_id, snippet)`` pairs for a project, oldest first."""
        query = (
            "SELECT file_id, payload FROM snippets WHERE project_id = ? "
            "ORDER BY created_at ASC, rowid ASC"
        )
        params: list[Any] = [project_id]
        if limit is not None:
            # newest *limit* rows, still returned oldest first
            query = (
                "SELECT file_id, payload FROM ("
                "  SELECT rowid AS rid, file_id, payload, created_at FROM snippets "
                "  WHERE project_id = ? ORDER BY created_at DESC, rowid DESC LIMIT ?"
                ") ORDER BY created_at ASC, rid ASC"
            )
            params.append(limit)

        with self._lock, self._connect() as conn:
            rows = conn.execute(query, params).fetchall()

        result: list[tuple[str | None, Snippet]] = []
        for row in rows:
            data = self._decode(row["payload"])
            if data is not None:
                result.append((row["file_id"], Snippet.from_dict(data)))
        return result

    def snippet_count(self, project_id: str | None = None) -> int:
        query = "SELECT COUNT(*) AS cnt FROM snippets"
        params: list[Any] = []
        if project_id is not None:
            query += " WHERE project_id = ?"
            params.append(project_id)
        with self._lock, self._connect() as conn:
            row = conn.execute(query, params).fetchone()
        return row["cnt"] if row else 0

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    def save_feedback(self, records: list[FeedbackRecord]) -> int:
        """Append a batch of feedback records.  Returns the number written."""
        if not records:
            return 0
        rows = [
            (r.snippet_id, self._encode(r.to_dict()), r.submitted_at.isoformat())
            for r in records
        ]
        with self._lock, self._connect() as conn:
            conn.executemany(
                "INSERT INTO feedback (snippet_id, payload, submitted_at) VALUES (?, ?, ?)",
                rows,
            )
        return len(rows)

    def list_feedback(
        self,
        snippet_id: str | None = None,
        *,
        limit: int = 100,
    ) -> list[FeedbackRecord]:
        """Return feedback records, newest first."""
        query = "SELECT payload FROM feedback"
        params: list[Any] = []
        if snippet_id:
            query += " WHERE snippet_id = ?"
            params.append(snippet_id)
        query += " ORDER BY seq DESC LIMIT ?"
        params.append(limit)

        with self._lock, self._connect() as conn:
            rows = conn.execute(query, params).fetchall()

        records: list[FeedbackRecord] = []
        for row in rows:
            data = self._decode(row["payload"])
            if data is not None:
                records.append(FeedbackRecord.from_dict(data))
        return records
