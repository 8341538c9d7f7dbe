"""
M-Pesa Daraja transport.

- OAuth: GET /oauth/v1/generate?grant_type=client_credentials with HTTP Basic
  consumer key/secret, JSON ``access_token``. Retried on transport errors.
- STK push: POST /mpesa/stkpush/v1/processrequest with a Bearer token.
  Never retried: a second submit would prompt the payer twice.
"""
from __future__ import annotations

from typing import Any, Optional

import httpx

from application.ports.payment_gateway import RawGatewayResponse
from core.settings import PaymentSettings, payment_settings
from domain.common.exceptions import GatewayRejected
from infrastructure.external.payments.base import BasePaymentClient


OAUTH_PATH = "/oauth/v1/generate"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"


class DarajaTransport(BasePaymentClient):
    provider = "mpesa"

    def __init__(
        self,
        config: Optional[PaymentSettings] = None,
        *,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        cfg = config or payment_settings
        super().__init__(
            timeouts=cfg.timeouts.model_dump(),
            retry={"max": cfg.retry.max, "base": cfg.retry.base_backoff},
            transport=transport,
        )
        self.base_url = (base_url or cfg.mpesa.base_url).rstrip("/")

    async def authenticate(self, key: str, secret: str) -> str:
        async def _call() -> httpx.Response:
            async with self.client() as c:
                return await c.get(
                    f"{self.base_url}{OAUTH_PATH}",
                    params={"grant_type": "client_credentials"},
                    auth=httpx.BasicAuth(key, secret),
                )

        raw = await self._send("oauth_token", _call, retry=True)
        body = raw.json_or_none()
        token = body.get("access_token") if isinstance(body, dict) else None
        if not raw.is_success or not token:
            raise GatewayRejected(
                "gateway refused credentials",
                provider=self.provider,
                status_code=raw.status_code,
                raw_body=raw.text[:2000],
                provider_code=body.get("errorCode") if isinstance(body, dict) else None,
            )
        return str(token)

    async def submit(self, credential: str, payload: dict[str, Any]) -> RawGatewayResponse:
        async def _call() -> httpx.Response:
            async with self.client() as c:
                return await c.post(
                    f"{self.base_url}{STK_PUSH_PATH}",
                    json=payload,
                    headers={"Authorization": f"Bearer {credential}"},
                )

        return await self._send("stk_push", _call)
