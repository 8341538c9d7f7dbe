"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

# Kenyan MSISDN after normalisation: 254 + 7xx/1xx + 6 digits
_MSISDN = re.compile(r"^254[17]\d{8}$")


def normalize_msisdn(value: str) -> str:
    """Accept 07.., 01.., +2547.., 2547.. and return the 2547.. form Daraja expects."""
    digits = re.sub(r"[\s\-()]", "", value or "")
    if digits.startswith("+"):
        digits = digits[1:]
    if digits.startswith("0") and len(digits) == 10:
        digits = "254" + digits[1:]
    elif len(digits) == 9 and digits[0] in "17":
        digits = "254" + digits
    if not _MSISDN.match(digits):
        raise ValueError("phone must be a Kenyan mobile number, e.g. 2547XXXXXXXX")
    return digits


class InitiatePayment(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    phone: str
    category: str = Field(..., min_length=1, max_length=100)

    @field_validator("name", "category")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("must not be blank")
        return s

    @field_validator("phone")
    @classmethod
    def _normalize_phone(cls, v: str) -> str:
        return normalize_msisdn(v)


class GatewayTicket(BaseModel):
    transaction_id: Optional[str] = None
    merchant_request_id: Optional[str] = None
    raw_response: Any = None


class InitiationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = "pending"
    correlation_key: str = Field(serialization_alias="correlationKey")
    gateway_ticket: Any = Field(default=None, serialization_alias="gatewayTicket")


class IntentStatus(BaseModel):
    correlation_key: str = Field(serialization_alias="correlationKey")
    state: str


# Daraja STK callback body: {Body:{stkCallback:{...}}}


class StkCallbackMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    Item: Optional[list[Any]] = None


class StkCallback(BaseModel):
    """Only CheckoutRequestID and ResultCode decide whether a callback is usable."""

    model_config = ConfigDict(extra="allow")

    MerchantRequestID: Optional[str] = None
    CheckoutRequestID: str = Field(..., min_length=1)
    ResultCode: int
    ResultDesc: Optional[str] = None
    CallbackMetadata: Optional[StkCallbackMetadata] = None

    @field_validator("MerchantRequestID", "ResultDesc", mode="before")
    @classmethod
    def _optional_text(cls, v: Any) -> Optional[str]:
        return None if v is None else str(v)

    @field_validator("CallbackMetadata", mode="before")
    @classmethod
    def _lenient_metadata(cls, v: Any) -> Any:
        # unusable metadata reads as empty
        if not isinstance(v, dict) or not isinstance(v.get("Item"), (list, type(None))):
            return None
        return v

    def metadata_items(self) -> dict[str, Any]:
        if self.CallbackMetadata is None or not self.CallbackMetadata.Item:
            return {}
        items: dict[str, Any] = {}
        for entry in self.CallbackMetadata.Item:
            if not isinstance(entry, dict):
                continue
            name = entry.get("Name")
            if not isinstance(name, str) or not name:
                continue
            items[name] = entry.get("Value")
        return items


class StkCallbackBody(BaseModel):
    model_config = ConfigDict(extra="allow")

    stkCallback: StkCallback


class StkCallbackEnvelope(BaseModel):
    model_config = ConfigDict(extra="allow")

    Body: StkCallbackBody


class CallbackAck(BaseModel):
    """Neutral acknowledgment returned to the gateway on every path."""

    ResultCode: int = 0
    ResultDesc: str = "Accepted"
    rejected: bool = Field(default=False, exclude=True)
