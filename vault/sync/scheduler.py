"""Background task that drains the replication queue periodically."""

import asyncio
from typing import Optional

from common.logging_config import get_logger
from vault import config
from vault.sync.queue_manager import SyncQueueManager

logger = get_logger(__name__)


class SyncScheduler:
    """
    Periodically releases stale claims and processes one batch.
    """

    def __init__(self, manager: SyncQueueManager, interval_seconds: Optional[float] = None):
        self.manager = manager
        self.interval_seconds = interval_seconds if interval_seconds is not None else config.SYNC_INTERVAL_SECONDS
        self._running = False
        self._task = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("Sync scheduler already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"Started sync scheduler (interval: {self.interval_seconds}s)")

    async def stop(self) -> None:
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Stopped sync scheduler")

    async def _run(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)

                if not self._running:
                    break

                await self.run_cycle()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in sync scheduler: {e}", exc_info=True)

    async def run_cycle(self) -> None:
        """Execute one scheduling cycle."""
        released = self.manager.recover_stale_transfers()
        if released:
            logger.info(f"Released {released} stale transfer(s) before batch")
        await self.manager.process_batch()
