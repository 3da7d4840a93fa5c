"""
Join helpers for parallel lanes and foreach iterations.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, List, Optional, Sequence


@dataclass
class LaneOutcome:
    index: int
    result: Any = None
    error: Optional[Exception] = None
    done: bool = False

    @property
    def ok(self) -> bool:
        return self.done and self.error is None


async def gather_all(coros: Sequence[Awaitable[Any]], *, fail_fast: bool = True) -> List[LaneOutcome]:
    """
    Run every awaitable concurrently and return their outcomes in input order.

    Failures are captured on the outcome rather than raised. With
    ``fail_fast`` the first failure cancels the siblings still running, whose
    outcomes stay ``done=False``; otherwise every sibling runs to completion.
    """

    outcomes = [LaneOutcome(index=i) for i in range(len(coros))]
    tasks = [asyncio.ensure_future(_capture(coro, outcomes[i])) for i, coro in enumerate(coros)]
    if not tasks:
        return outcomes

    try:
        pending = set(tasks)
        while pending:
            _, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            if fail_fast and any(outcome.error is not None for outcome in outcomes):
                break
    except asyncio.CancelledError:
        await _cancel_all(tasks)
        raise
    await _cancel_all(pending)
    return outcomes


async def first_completed(coros: Sequence[Awaitable[Any]]) -> tuple[Optional[LaneOutcome], List[LaneOutcome]]:
    """
    Wait for the first awaitable to finish, successfully or not, and cancel
    the rest.

    Returns the winner (``None`` when the first to finish failed) and all
    outcomes; the failure is left on its outcome for the caller to raise.
    """

    outcomes = [LaneOutcome(index=i) for i in range(len(coros))]
    tasks = [asyncio.ensure_future(_capture(coro, outcomes[i])) for i, coro in enumerate(coros)]
    pending = set(tasks)
    winner: Optional[LaneOutcome] = None
    try:
        if pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            first = min((outcomes[tasks.index(task)] for task in done), key=lambda o: o.index)
            winner = first if first.ok else None
    except asyncio.CancelledError:
        await _cancel_all(tasks)
        raise
    await _cancel_all(pending)
    return winner, outcomes


async def _cancel_all(tasks) -> None:
    tasks = [task for task in tasks if not task.done()]
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)


async def _capture(coro: Awaitable[Any], outcome: LaneOutcome) -> None:
    try:
        outcome.result = await coro
        outcome.done = True
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        outcome.error = exc
        outcome.done = True
