# erp_backend/sync/sync_monitor.py
from __future__ import annotations

import asyncio
import enum
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from erp_backend.sync.offline_queue import DrainResult, OfflineQueue, QueueStats

logger = logging.getLogger("erp_backend.sync")

SETTLE_DELAY_SECONDS = 1.0
SYNC_INTERVAL_SECONDS = 30.0


class SyncStatus(str, enum.Enum):
    SYNCED = "synced"
    SYNCING = "syncing"
    PENDING = "pending"
    ERROR = "error"


class SyncMonitor:
    """Connectivity tracking and automatic draining for an OfflineQueue.

    Coming back online drains the queue after a short settle delay. While
    online, a periodic loop drains whatever is still pending.
    """

    def __init__(
        self,
        queue: OfflineQueue,
        online: bool = True,
        settle_delay: float = SETTLE_DELAY_SECONDS,
        interval: float = SYNC_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.queue = queue
        self.settle_delay = settle_delay
        self.interval = interval
        self.clock = clock

        self.is_online = online
        self.is_syncing = False
        self.last_sync_time: Optional[datetime] = None
        self.sync_error: Optional[str] = None
        self.stats: QueueStats = queue.stats()

        self._reconnect_task: Optional[asyncio.Task] = None
        self._loop_task: Optional[asyncio.Task] = None

        queue.subscribe(self._on_stats)

    def _on_stats(self, stats: QueueStats) -> None:
        self.stats = stats

    @property
    def status(self) -> SyncStatus:
        if self.is_syncing or self.queue.is_draining:
            return SyncStatus.SYNCING
        if self.sync_error or self.stats.failed > 0:
            return SyncStatus.ERROR
        if self.stats.pending > 0:
            return SyncStatus.PENDING
        return SyncStatus.SYNCED

    def snapshot(self) -> dict:
        return {
            "is_online": self.is_online,
            "status": self.status.value,
            "pending": self.stats.pending,
            "failed": self.stats.failed,
            "last_sync_time": self.last_sync_time.isoformat() if self.last_sync_time else None,
            "sync_error": self.sync_error,
        }

    # -------------------------
    # Connectivity
    # -------------------------

    def set_online(self, online: bool) -> None:
        was_online = self.is_online
        self.is_online = online
        if online == was_online:
            return

        logger.info("network_status_changed", extra={"online": online})
        if online:
            self._reconnect_task = asyncio.get_running_loop().create_task(self._sync_after_reconnect())
        elif self._reconnect_task is not None:
            self._reconnect_task.cancel()
            self._reconnect_task = None

    async def _sync_after_reconnect(self) -> None:
        # let the connection settle before replaying
        await asyncio.sleep(self.settle_delay)
        if self.is_online and self.queue.stats().pending > 0:
            await self.retry_sync()

    # -------------------------
    # Draining
    # -------------------------

    async def retry_sync(self) -> Optional[DrainResult]:
        if not self.is_online:
            self.sync_error = "Cannot sync while offline"
            return None
        if self.queue.is_draining:
            # the running drain owns is_syncing and the sync outcome
            return DrainResult(skipped=True)

        self.is_syncing = True
        self.sync_error = None
        try:
            result = await self.queue.drain()
        except Exception as exc:
            self.sync_error = str(exc) or "Sync failed"
            logger.exception("sync_failed")
            return None
        finally:
            self.is_syncing = False

        if not result.skipped:
            self.last_sync_time = self.clock()
            if result.failed:
                self.sync_error = f"{result.failed} operation(s) failed to sync"
        return result

    async def _periodic_sync(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.stats = self.queue.stats()
            if self.is_online and self.stats.pending > 0:
                await self.retry_sync()

    def start(self) -> None:
        if self._loop_task is None:
            self._loop_task = asyncio.get_running_loop().create_task(self._periodic_sync())

    async def stop(self) -> None:
        for task in (self._loop_task, self._reconnect_task):
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._loop_task = None
        self._reconnect_task = None
