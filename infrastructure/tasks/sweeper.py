"""Periodic TTL sweep of pending payment intents.

Runs as an asyncio task inside the API process: the in-memory store only
exists there, so an out-of-process scheduler could not reach it.
"""
from __future__ import annotations

import asyncio
from typing import Optional

from core.logging_config import get_logger
from domain.payment.repository import PendingStore


logger = get_logger(__name__)


class PendingSweeper:
    def __init__(self, store: PendingStore, *, interval_seconds: float = 60.0) -> None:
        self._store = store
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="pending-sweeper")
        logger.info("pending_sweeper_started", interval_seconds=self._interval)

    async def run_once(self) -> int:
        try:
            return await self._store.sweep_expired()
        except Exception as exc:
            # keep sweeping on the next tick
            logger.error("pending_sweep_failed", error=str(exc), exc_info=True)
            return 0

    async def _loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._interval)
                await self.run_once()
        except asyncio.CancelledError:  # graceful exit
            return

    async def aclose(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("pending_sweeper_stopped")
