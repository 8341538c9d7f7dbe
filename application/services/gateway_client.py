"""
Gateway client: builds signed STK push requests and interprets the answer.

Depends only on the GatewayTransport port; the Daraja HTTP adapter is
injected from the composition root.
"""
from __future__ import annotations

import base64
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from application.dtos.payments import GatewayTicket
from application.ports.payment_gateway import GatewayTransport, RawGatewayResponse
from core.logging_config import get_logger
from core.settings import MpesaSettings, payment_settings
from domain.common.exceptions import ConfigurationError, GatewayRejected
from domain.payment.entity import Subject


logger = get_logger(__name__)

_REQUIRED = ("consumer_key", "consumer_secret", "shortcode", "passkey", "callback_url")
_MAX_RAW_BODY = 2000


def build_timestamp(now: Optional[datetime] = None) -> str:
    """YYYYMMDDHHMMSS in UTC."""
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y%m%d%H%M%S")


def build_password(shortcode: str, passkey: str, timestamp: str) -> str:
    return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode("utf-8")).decode("ascii")


class GatewayClient:
    def __init__(
        self,
        transport: GatewayTransport,
        config: Optional[MpesaSettings] = None,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.transport = transport
        self.config = config or payment_settings.mpesa
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def provider(self) -> str:
        return getattr(self.transport, "provider", "mpesa")

    def ensure_configured(self) -> None:
        missing = [name for name in _REQUIRED if not getattr(self.config, name)]
        if missing:
            raise ConfigurationError("mpesa", [f"MPESA__{name.upper()}" for name in missing])

    def build_payload(self, phone: str, timestamp: str) -> dict[str, Any]:
        cfg = self.config
        return {
            "BusinessShortCode": cfg.shortcode,
            "Password": build_password(cfg.shortcode or "", cfg.passkey or "", timestamp),
            "Timestamp": timestamp,
            "TransactionType": cfg.transaction_type,
            "Amount": cfg.amount,
            "PartyA": phone,
            "PartyB": cfg.shortcode,
            "PhoneNumber": phone,
            "CallBackURL": cfg.callback_url,
            "AccountReference": cfg.account_reference,
            "TransactionDesc": cfg.transaction_desc,
        }

    async def request_push_payment(self, subject: Subject) -> GatewayTicket:
        """Authenticate then submit one STK push for ``subject.phone``.

        Raises ConfigurationError before any network I/O when credentials
        are missing, GatewayUnavailable on timeouts/transport failures and
        GatewayRejected on a non-success answer. The submit is never retried.
        """
        self.ensure_configured()
        credential = await self.transport.authenticate(self.config.consumer_key or "", self.config.consumer_secret or "")
        payload = self.build_payload(subject.phone, build_timestamp(self._clock()))
        logger.info("stk_push_submit", provider=self.provider, phone=_mask_phone(subject.phone), amount=self.config.amount)
        response = await self.transport.submit(credential, payload)
        return self._interpret(response)

    def _interpret(self, response: RawGatewayResponse) -> GatewayTicket:
        body = response.json_or_none()
        if not response.is_success:
            provider_code = body.get("errorCode") if isinstance(body, dict) else None
            message = (body.get("errorMessage") if isinstance(body, dict) else None) or "gateway rejected push request"
            logger.warning("stk_push_rejected", provider=self.provider, status_code=response.status_code, provider_code=provider_code)
            raise GatewayRejected(
                message,
                provider=self.provider,
                status_code=response.status_code,
                raw_body=response.text[:_MAX_RAW_BODY],
                provider_code=provider_code,
            )
        if not isinstance(body, dict):
            logger.warning("stk_push_unparseable_response", provider=self.provider, status_code=response.status_code)
            return GatewayTicket(raw_response=response.text[:_MAX_RAW_BODY] or None)

        response_code = body.get("ResponseCode")
        if response_code is not None and str(response_code) != "0":
            logger.warning("stk_push_not_accepted", provider=self.provider, response_code=response_code)
            raise GatewayRejected(
                body.get("ResponseDescription") or "gateway did not accept push request",
                provider=self.provider,
                status_code=response.status_code,
                raw_body=response.text[:_MAX_RAW_BODY],
                provider_code=str(response_code),
            )

        transaction_id = body.get("CheckoutRequestID") or None
        ticket = GatewayTicket(
            transaction_id=str(transaction_id) if transaction_id else None,
            merchant_request_id=body.get("MerchantRequestID"),
            raw_response=body,
        )
        if ticket.transaction_id is None:
            logger.warning("stk_push_missing_transaction_id", provider=self.provider)
        else:
            logger.info("stk_push_accepted", provider=self.provider, transaction_id=ticket.transaction_id)
        return ticket


def _mask_phone(phone: str) -> str:
    return phone[:5] + "***" + phone[-2:] if len(phone) > 7 else "***"
