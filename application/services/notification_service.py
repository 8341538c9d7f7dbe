"""Operator alerts decoupled from the request path.

``notify`` only enqueues; a single worker task drains the queue into the
AlertPort. Delivery is best-effort: overflow and sink failures are logged
and dropped, never retried.
"""
from __future__ import annotations

import asyncio
from typing import Optional

from application.ports.alerts import AlertPort
from core.logging_config import get_logger


logger = get_logger(__name__)


class AlertNotifier:
    def __init__(self, sink: AlertPort, *, queue_max: int = 100, send_timeout: float = 5.0) -> None:
        self.sink = sink
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=max(1, int(queue_max)))
        self._send_timeout = send_timeout
        self._worker: Optional[asyncio.Task] = None
        self._closed = False

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            loop = asyncio.get_running_loop()
            self._worker = loop.create_task(self._run(), name="alert-notifier")

    def notify(self, text: str) -> None:
        if self._closed:
            logger.warning("alert_dropped_closed", text=text)
            return
        try:
            self.start()
        except RuntimeError:
            # no running loop
            logger.warning("alert_dropped_no_loop", text=text)
            return
        try:
            self._queue.put_nowait(text)
        except asyncio.QueueFull:
            logger.warning("alert_queue_full", text=text)

    async def flush(self) -> None:
        """Wait until every queued alert has been handed to the sink."""
        if self._worker is None:
            return
        await self._queue.join()

    async def aclose(self, timeout: float = 5.0) -> None:
        self._closed = True
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("alert_queue_drain_timeout", pending=self._queue.qsize())
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    async def _run(self) -> None:
        while True:
            text = await self._queue.get()
            try:
                await asyncio.wait_for(self.sink.send(text), timeout=self._send_timeout)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("alert_send_failed", error=str(exc), error_type=type(exc).__name__)
            finally:
                self._queue.task_done()
