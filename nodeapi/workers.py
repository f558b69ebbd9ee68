"""Worker threads reserved for node operations.

Operations block on control-plane round trips for as long as a drain lasts,
so they run on their own capacity limiter instead of the framework's shared
thread pool, and a request waiting for a free worker still counts against its
own deadline.
"""

from __future__ import annotations

from typing import Any, Callable, TypeVar

import anyio
import anyio.to_thread

from .context import OperationContext
from .errors import ErrorKind, NodeActionError

T = TypeVar("T")


class OperationPool:
    def __init__(self, size: int):
        self.size = size
        self._slots = anyio.Semaphore(size)
        self._limiter = anyio.CapacityLimiter(size)

    async def run(self, ctx: OperationContext, func: Callable[..., T], *args: Any) -> T:
        acquired = False
        with anyio.move_on_after(ctx.remaining()):
            await self._slots.acquire()
            acquired = True
        if not acquired:
            raise NodeActionError(
                f"timed out after {ctx.budget_seconds}s while waiting for a free worker",
                ErrorKind.DEADLINE_EXCEEDED,
            )
        try:
            # a cancelled caller stops waiting at once; the thread notices ctx.cancelled
            return await anyio.to_thread.run_sync(func, *args, abandon_on_cancel=True, limiter=self._limiter)
        finally:
            self._slots.release()
