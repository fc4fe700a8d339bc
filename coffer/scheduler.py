"""
Timer that drives refresh cycles.

Runs one cycle as soon as it starts, then one per interval forever. A tick that
lands while a cycle is still running is dropped, not queued.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional


class RefreshScheduler:
    def __init__(self, refresh: Callable[[], Awaitable[object]], interval_seconds: float):
        self._refresh = refresh
        self.interval_seconds = interval_seconds
        self._loop_task: Optional[asyncio.Task] = None
        self._cycle_task: Optional[asyncio.Task] = None
        self._running = False
        self.skipped_ticks = 0

    @property
    def is_running_cycle(self) -> bool:
        return self._running

    async def _run_guarded(self) -> None:
        try:
            await self._refresh()
        except Exception:
            logging.exception("[prices] Refresh cycle failed")
        finally:
            self._running = False

    async def run_once(self) -> bool:
        """Run a cycle inline. Returns False if one was already in flight."""
        if self._running:
            self.skipped_ticks += 1
            logging.info("[prices] Refresh still running, skipping this tick")
            return False
        self._running = True
        await self._run_guarded()
        return True

    def trigger(self) -> bool:
        """Start a cycle in the background unless one is already in flight."""
        if self._running:
            self.skipped_ticks += 1
            logging.info("[prices] Refresh still running, skipping this tick")
            return False
        # Claim the slot before the task gets scheduled
        self._running = True
        self._cycle_task = asyncio.create_task(self._run_guarded())
        return True

    async def _loop(self) -> None:
        while True:
            self.trigger()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._loop_task is not None and not self._loop_task.done():
            return
        logging.info(f"[prices] Scheduler started, refreshing every {self.interval_seconds:g}s")
        self._loop_task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        for task in (self._loop_task, self._cycle_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._loop_task = None
        self._cycle_task = None
        self._running = False
