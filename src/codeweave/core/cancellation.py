"""Cooperative cancellation for in-flight generation requests.

A :class:`CancellationToken` is handed to
:meth:`codeweave.engine.Orchestrator.generate_code` and threaded through
both the backend call and validation.  Cancelling the token aborts whichever
of the two is currently running::

    token = CancellationToken()
    task = asyncio.create_task(orchestrator.generate_code(ctx, prompt, cancel_token=token))
    ...
    token.cancel("user pressed stop")
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Awaitable, TypeVar

from codeweave.core.errors import GenerationCancelledError

T = TypeVar("T")


class CancellationToken:
    """A one-shot cancellation signal shared by every stage of a request."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise GenerationCancelledError(self._reason)

    async def guard(self, work: Awaitable[T]) -> T:
        """Await *work* unless the token fires first.

        When the token wins, the work task is cancelled and awaited so that
        the underlying request is torn down before
        :class:`GenerationCancelledError` is raised.
        """
        task = asyncio.ensure_future(work)
        if self._event.is_set():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            raise GenerationCancelledError(self._reason)

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise

        if task.done():
            waiter.cancel()
            return task.result()

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        raise GenerationCancelledError(self._reason)
