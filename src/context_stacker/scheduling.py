from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

from context_stacker.logging import logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and long-running work.

    Work checks `is_cancelled` between units (batches, folders, directories);
    nothing already started is interrupted.
    """

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class Debouncer:
    """Coalesce bursts of triggers into one call after a quiet delay.

    Each `trigger` cancels the pending run and schedules a new one, so the
    action runs once, `delay` seconds after the last trigger. Must be used
    from within a running event loop.
    """

    def __init__(self, delay: float, action: Callable[[], Awaitable[None]]) -> None:
        self.delay = delay
        self._action = action
        self._task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def trigger(self) -> None:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        try:
            await self._action()
        except Exception:
            logger.exception("Debounced action failed")

    def cancel(self) -> None:
        task, self._task = self._task, None
        # The action may call cancel() from inside the scheduled run itself.
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def flush(self) -> None:
        """Run the pending action now instead of waiting for the delay."""
        if not self.pending:
            return
        self.cancel()
        await self._action()

    async def wait(self) -> None:
        """Wait until the currently scheduled run (if any) has completed."""
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
