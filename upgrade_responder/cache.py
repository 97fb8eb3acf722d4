from __future__ import annotations

import asyncio
import logging
from typing import List

from .errors import StoreError
from .points import TelemetryPoint
from .store import Store

logger = logging.getLogger(__name__)

MAX_SYNC_RETRIES = 5
# full batches waiting behind an in-flight flush; the oldest is dropped beyond this
MAX_PENDING_BATCHES = 3


class BatchCache:
    """
    Buffers telemetry points and writes them to the store in batches.

    A batch is flushed every `sync_interval` seconds, or as soon as it holds
    `cache_size` points. Failed writes are retried MAX_SYNC_RETRIES times and
    then the batch is dropped: delivery is best-effort.

    At most MAX_PENDING_BATCHES full batches wait behind a slow flush; beyond
    that the oldest is dropped and counted in points_dropped.

    `_lock` guards the buffered batch and is only held for appends and swaps.
    `_flush_lock` keeps at most one flush in flight; store writes happen
    outside `_lock` so add_point never waits on the network.
    """

    def __init__(self, store: Store, database: str, sync_interval: float, cache_size: int):
        if cache_size <= 0:
            raise ValueError("cache_size must be positive")
        self.store = store
        self.database = database
        self.sync_interval = sync_interval
        self.cache_size = cache_size

        self._lock = asyncio.Lock()
        self._flush_lock = asyncio.Lock()
        self._sync_event = asyncio.Event()
        self._stopping = False

        self._points: List[TelemetryPoint] = []
        self._full: List[List[TelemetryPoint]] = []  # size-triggered, waiting for the run loop

        self.points_written = 0
        self.points_dropped = 0

    def __len__(self) -> int:
        return len(self._points)

    @property
    def pending(self) -> int:
        return len(self._points) + sum(len(b) for b in self._full)

    async def add_point(self, point: TelemetryPoint) -> None:
        async with self._lock:
            self._points.append(point)
            if len(self._points) >= self.cache_size:
                self._full.append(self._points)
                self._points = []
                if len(self._full) > MAX_PENDING_BATCHES:
                    dropped = self._full.pop(0)
                    self.points_dropped += len(dropped)
                    logger.warning(
                        "Store is falling behind, %d batches pending. Dropped the oldest %d points",
                        len(self._full) + 1,
                        len(dropped),
                    )
                self._sync_event.set()

    async def run(self) -> None:
        """Flush periodically or when signaled; one last flush on stop."""
        logger.debug("Batch cache loop started (interval=%ss, size=%d)", self.sync_interval, self.cache_size)
        while not self._stopping:
            try:
                await asyncio.wait_for(self._sync_event.wait(), timeout=self.sync_interval)
            except asyncio.TimeoutError:
                pass
            self._sync_event.clear()
            await self._sync_logged()

        await self._sync_logged()
        logger.debug("Batch cache loop stopped")

    async def _sync_logged(self) -> None:
        # keep the loop alive whatever the store adapter raises
        try:
            await self.sync()
        except Exception:
            logger.exception("Unexpected error while syncing batch points")

    def stop(self) -> None:
        self._stopping = True
        self._sync_event.set()

    async def sync(self) -> None:
        async with self._flush_lock:
            async with self._lock:
                batches = self._full
                if self._points:
                    batches.append(self._points)
                self._full = []
                self._points = []

            for batch in batches:
                await self._write_batch(batch)

    async def _write_batch(self, batch: List[TelemetryPoint]) -> None:
        for attempt in range(1, MAX_SYNC_RETRIES + 1):
            try:
                await asyncio.to_thread(self.store.write_points, batch, self.database)
            except StoreError as e:
                if attempt < MAX_SYNC_RETRIES:
                    logger.debug("Failed to write %d points to database: %s. Retrying", len(batch), e)
                else:
                    self.points_dropped += len(batch)
                    logger.warning(
                        "Failed to write %d points to database after %d attempts: %s. Dropped the batch points",
                        len(batch),
                        MAX_SYNC_RETRIES,
                        e,
                    )
                continue
            self.points_written += len(batch)
            logger.debug("synced %d points to database", len(batch))
            return
