"""
Single-shot scheduled eviction of finished jobs.
"""

import asyncio
from collections.abc import Awaitable, Callable

from crm_enrichment.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

EvictionCallback = Callable[[], Awaitable[None]]


class CleanupScheduler:
    """
    schedule(key, delay, callback) / cancel(key).

    At most one pending eviction per key; scheduling again replaces the
    previous timer. No periodic sweep.
    """

    def __init__(self):
        self._timers: dict[str, asyncio.Task] = {}

    def schedule(self, key: str, delay: float, callback: EvictionCallback) -> None:
        self.cancel(key)
        task = asyncio.create_task(self._fire_after(key, delay, callback))
        self._timers[key] = task
        logger.debug("Eviction scheduled", key=key, delay_seconds=delay)

    def cancel(self, key: str) -> bool:
        task = self._timers.pop(key, None)
        if task is None:
            return False
        task.cancel()
        logger.debug("Eviction cancelled", key=key)
        return True

    def is_scheduled(self, key: str) -> bool:
        return key in self._timers

    async def _fire_after(self, key: str, delay: float, callback: EvictionCallback) -> None:
        await asyncio.sleep(delay)
        # Drop our own handle first so a reschedule from the callback is kept
        if self._timers.get(key) is asyncio.current_task():
            del self._timers[key]
        try:
            await callback()
        except Exception as e:
            logger.error("Eviction callback failed", key=key, error=str(e))

    def cancel_all(self) -> None:
        for key in list(self._timers):
            self.cancel(key)
