"""Durable storage for snippet history and feedback."""

from codeweave.persistence.base import PersistenceStore
from codeweave.persistence.store import SqliteHistoryStore

__all__ = ["PersistenceStore", "SqliteHistoryStore"]
