"""
Per-run context handed to every step handler.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from steprail.runtime.cancellation import CancellationToken


class SuspensionGate:
    """Futures for suspend steps waiting on an external resume signal."""

    def __init__(self) -> None:
        self._waiting: Dict[str, asyncio.Future] = {}
        self._early: Dict[str, Any] = {}

    def waiting(self) -> list[str]:
        return [step_id for step_id, future in self._waiting.items() if not future.done()]

    async def wait(self, step_id: str, cancellation: CancellationToken) -> Any:
        if step_id in self._early:
            return self._early.pop(step_id)
        future = asyncio.get_running_loop().create_future()
        self._waiting[step_id] = future
        try:
            return await cancellation.run(future)
        finally:
            self._waiting.pop(step_id, None)

    def resume(self, step_id: str, payload: Any = None) -> bool:
        """
        Release a suspended step. A resume that arrives before the step
        suspends is kept and consumed when it does. Returns ``True`` if a
        waiting step was released.
        """
        future = self._waiting.get(step_id)
        if future is None or future.done():
            self._early[step_id] = payload
            return False
        future.set_result(payload)
        return True


@dataclass
class RunContext:
    run_id: str
    workflow_id: str = ""
    inputs: Mapping[str, Any] = field(default_factory=dict)
    # toolkit slug -> connection id, from the readiness check
    connections: Mapping[str, str] = field(default_factory=dict)
    user_id: Optional[str] = None
    cancellation: CancellationToken = field(default_factory=CancellationToken)
    suspensions: SuspensionGate = field(default_factory=SuspensionGate)
    extras: Dict[str, Any] = field(default_factory=dict)

    def connection_for(self, toolkit_slug: Optional[str]) -> Optional[str]:
        if not toolkit_slug:
            return None
        return self.connections.get(toolkit_slug)
