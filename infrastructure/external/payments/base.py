"""
Base payment transport implementing shared concerns: http, retry, logging.

Concrete providers subclass and implement the provider wire calls. Every
request is bounded by httpx timeouts; network failures surface as
GatewayUnavailable.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Callable, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from application.ports.payment_gateway import RawGatewayResponse
from core.logging_config import get_logger
from domain.common.exceptions import GatewayUnavailable


logger = get_logger(__name__)


class BasePaymentClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or {"connect": 3.0, "read": 10.0, "write": 10.0, "total": 15.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            self._timeouts_cfg["total"],
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
        )

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeouts, transport=self._transport)
        yield self._client

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Any]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError)),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _send(self, operation: str, fn: Callable[[], Any], *, retry: bool = False) -> RawGatewayResponse:
        """Run one HTTP exchange, mapping transport failures to GatewayUnavailable."""
        try:
            response: httpx.Response = await (self._retry(fn) if retry else fn())
        except httpx.TimeoutException as exc:
            logger.warning("gateway_timeout", provider=self.provider, operation=operation, error=str(exc))
            raise GatewayUnavailable(f"{operation} timed out", provider=self.provider, details={"operation": operation}) from exc
        except httpx.TransportError as exc:
            logger.warning("gateway_transport_error", provider=self.provider, operation=operation, error=str(exc))
            raise GatewayUnavailable(f"{operation} failed: {exc}", provider=self.provider, details={"operation": operation}) from exc
        self._log(f"{operation}_response", status_code=response.status_code)
        return RawGatewayResponse(
            status_code=response.status_code,
            body=response.content,
            headers=dict(response.headers),
        )

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
