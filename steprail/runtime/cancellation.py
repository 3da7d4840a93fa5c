"""
Explicit cancellation token threaded through every await point of a run.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, TypeVar

from steprail.errors import RunCancelledError

T = TypeVar("T")


class CancellationToken:
    """
    One-shot cancellation signal for a run.

    ``run`` races an awaitable against the signal: when the token fires first
    the awaitable's task is cancelled (best-effort; a handler that ignores
    cancellation keeps running in the background and its result is discarded)
    and ``RunCancelledError`` is raised.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelledError(self.reason or "Run was cancelled")

    async def wait(self) -> None:
        await self._event.wait()

    async def run(self, awaitable: Awaitable[T]) -> T:
        if self.cancelled:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        task.add_done_callback(_consume_result)
        self.raise_if_cancelled()
        raise RunCancelledError()  # pragma: no cover

    async def sleep(self, seconds: float) -> None:
        """Cooperative sleep that ends early with ``RunCancelledError``."""
        if seconds <= 0:
            self.raise_if_cancelled()
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled()


def _consume_result(task: "asyncio.Future[Any]") -> None:
    # Retrieve the outcome of an abandoned task so asyncio does not log it
    if not task.cancelled():
        task.exception()
