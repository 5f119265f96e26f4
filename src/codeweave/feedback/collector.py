"""In-memory feedback queue."""

from __future__ import annotations

import logging
import threading
from collections import deque

from codeweave.core.models import FeedbackAck, FeedbackRecord
from codeweave.persistence.base import PersistenceStore

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5
DEFAULT_MAX_PENDING = 1000


class FeedbackCollector:
    """Bounded queue of human ratings awaiting a downstream flush.

    ``submit`` is synchronous, O(1) and never raises.  When the queue is full
    the oldest pending record is dropped.
    """

    def __init__(self, max_pending: int = DEFAULT_MAX_PENDING) -> None:
        if max_pending <= 0:
            raise ValueError("max_pending must be positive")
        self.max_pending = max_pending
        self._queue: deque[FeedbackRecord] = deque(maxlen=max_pending)
        self._lock = threading.Lock()
        self.dropped = 0

    def submit(
        self,
        snippet_id: str,
        rating: int,
        free_text: str = "",
        user_id: str = "",
    ) -> FeedbackAck:
        reason = _rejection_reason(snippet_id, rating)
        if reason:
            logger.info("Feedback for %s rejected: %s", snippet_id or "<empty>", reason)
            return FeedbackAck(accepted=False, pending=self.pending_count(), reason=reason)

        record = FeedbackRecord(
            snippet_id=snippet_id,
            rating=int(rating),
            free_text=free_text or "",
            user_id=user_id or "",
        )
        with self._lock:
            evicted = len(self._queue) == self.max_pending
            self._queue.append(record)
            if evicted:
                self.dropped += 1
            pending = len(self._queue)

        if evicted:
            logger.warning(
                "Feedback queue full (%d); dropped the oldest record", self.max_pending
            )
        return FeedbackAck(accepted=True, pending=pending)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._queue)

    def pending(self) -> list[FeedbackRecord]:
        """Snapshot of queued records, oldest first."""
        with self._lock:
            return list(self._queue)

    def drain(self, limit: int | None = None) -> list[FeedbackRecord]:
        """Remove and return up to *limit* of the oldest records."""
        with self._lock:
            count = len(self._queue) if limit is None else min(limit, len(self._queue))
            return [self._queue.popleft() for _ in range(count)]

    def requeue(self, records: list[FeedbackRecord]) -> None:
        """Put records back at the front of the queue, oldest first."""
        if not records:
            return
        with self._lock:
            room = self.max_pending - len(self._queue)
            keep = records[-room:] if room > 0 else []
            lost = len(records) - len(keep)
            self._queue.extendleft(reversed(keep))
            self.dropped += lost
        if lost:
            logger.warning("Feedback queue full; %d re-queued record(s) dropped", lost)

    def flush(self, store: PersistenceStore, limit: int | None = None) -> int:
        """Drain pending records into *store*.  Returns the number written.

        On failure the batch goes back to the front of the queue.
        """
        batch = self.drain(limit)
        if not batch:
            return 0
        try:
            written = store.save_feedback(batch)
        except Exception:
            logger.warning("Feedback flush failed; re-queueing %d record(s)", len(batch), exc_info=True)
            self.requeue(batch)
            return 0
        logger.debug("Flushed %d feedback record(s)", written)
        return written


def _rejection_reason(snippet_id: str, rating: object) -> str:
    if not snippet_id:
        return "snippet_id must not be empty"
    if isinstance(rating, bool) or not isinstance(rating, int):
        return f"rating must be an integer between {MIN_RATING} and {MAX_RATING}"
    if not MIN_RATING <= rating <= MAX_RATING:
        return f"rating {rating} is outside {MIN_RATING}..{MAX_RATING}"
    return ""
