"""Fixed-interval snapshot refresh while a room session is active."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_S = 2.0


class SnapshotPoller:
    """Awaits ``refresh`` every ``interval_s`` seconds until stopped.

    Ticks run one after another, so a slow fetch delays the next tick instead
    of overlapping it. A tick that raises is logged and does not end the
    loop.
    """

    def __init__(self, refresh: Callable[[], Awaitable[None]], interval_s: float = DEFAULT_INTERVAL_S) -> None:
        self._refresh = refresh
        self.interval_s = interval_s
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            logger.debug("Poll tick")
            try:
                await self._refresh()
            except Exception:
                logger.exception("Snapshot refresh failed, polling continues")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
