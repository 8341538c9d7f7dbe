"""
Callback validator: shape check, origin allowlist and shared-secret check.

Never raises for bad input; every outcome is a ValidationResult.
"""
from __future__ import annotations

import hmac
import ipaddress
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from application.dtos.payments import StkCallbackEnvelope
from core.logging_config import get_logger
from core.settings import CallbackSettings, payment_settings
from domain.payment.entity import CallbackEvent


logger = get_logger(__name__)


class Verdict(str, Enum):
    TRUSTED = "trusted"
    UNTRUSTED = "untrusted"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class InboundCallback:
    """Raw callback as received at the HTTP boundary."""

    body: Any
    origin: Optional[str] = None
    token: Optional[str] = None


@dataclass(frozen=True)
class ValidationResult:
    verdict: Verdict
    reason: Optional[str] = None
    event: Optional[CallbackEvent] = None


def origin_allowed(origin: Optional[str], allowlist: Sequence[str]) -> bool:
    """Exact IP match, or containment for entries written as CIDR networks."""
    if not origin:
        return False
    try:
        ip = ipaddress.ip_address(origin)
    except ValueError:
        return False
    for entry in allowlist:
        entry = entry.strip()
        if not entry:
            continue
        try:
            if "/" in entry:
                if ip in ipaddress.ip_network(entry, strict=False):
                    return True
            elif ip == ipaddress.ip_address(entry):
                return True
        except ValueError:
            logger.warning("callback_allowlist_entry_invalid", entry=entry)
    return False


def parse_event(inbound: InboundCallback) -> Optional[CallbackEvent]:
    try:
        envelope = StkCallbackEnvelope.model_validate(inbound.body)
    except ValidationError:
        return None
    cb = envelope.Body.stkCallback
    return CallbackEvent(
        source_origin=inbound.origin,
        claimed_correlation_key=cb.CheckoutRequestID,
        result_code=cb.ResultCode,
        result_desc=cb.ResultDesc,
        merchant_request_id=cb.MerchantRequestID,
        metadata=cb.metadata_items(),
        auth_token=inbound.token,
    )


class CallbackValidator:
    def __init__(self, config: Optional[CallbackSettings] = None) -> None:
        self.config = config or payment_settings.callback

    @property
    def has_trust_mechanism(self) -> bool:
        return bool(self.config.ip_allowlist) or bool(self.config.token)

    def validate(self, inbound: InboundCallback) -> ValidationResult:
        event = parse_event(inbound)
        if event is None:
            return ValidationResult(Verdict.MALFORMED, reason="callback body does not match the STK callback shape")

        allowlist = self.config.ip_allowlist
        if allowlist and not origin_allowed(inbound.origin, allowlist):
            return ValidationResult(Verdict.UNTRUSTED, reason=f"origin {inbound.origin or 'unknown'} not allowlisted", event=event)

        expected = self.config.token
        if expected:
            presented = inbound.token or ""
            if not hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8")):
                reason = "callback token missing" if not inbound.token else "callback token mismatch"
                return ValidationResult(Verdict.UNTRUSTED, reason=reason, event=event)

        return ValidationResult(Verdict.TRUSTED, event=event)
