"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so gateway/callback/directory/alert
secrets live in one place, e.g. ``MPESA__CONSUMER_KEY`` or
``CALLBACK__IP_ALLOWLIST``.
"""
from __future__ import annotations

import json
import re
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_CATEGORY_SEPARATORS = re.compile(r"[\s_\-]+")


def normalize_category(value: str | None) -> str:
    """Canonical form used for category -> group routing."""
    return _CATEGORY_SEPARATORS.sub(" ", (value or "").strip().lower()).strip()


class PaymentTimeouts(BaseModel):
    connect: float = 3.0
    read: float = 10.0
    write: float = 10.0
    total: float = 15.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class MpesaSettings(BaseModel):
    consumer_key: Optional[str] = None
    consumer_secret: Optional[str] = None
    shortcode: Optional[str] = None
    passkey: Optional[str] = None
    callback_url: Optional[str] = None
    base_url: str = "https://sandbox.safaricom.co.ke"
    amount: int = Field(default=10, gt=0)
    transaction_type: str = "CustomerPayBillOnline"
    account_reference: str = "Payment"
    transaction_desc: str = "Payment"


class CallbackSettings(BaseModel):
    # Optional IPs/CIDRs allowed to post callbacks
    ip_allowlist: list[str] | None = None
    # Optional shared secret appended to CallBackURL (?token=...) or sent as a header
    token: Optional[str] = None
    token_query_param: str = "token"
    token_header: str = "X-Callback-Token"
    untrusted_policy: Literal["alert_and_continue", "reject"] = "reject"
    # How long a callback waits for an in-flight temp-key -> CheckoutRequestID move
    rekey_wait_seconds: float = Field(default=5.0, ge=0)

    @field_validator("ip_allowlist", mode="before")
    @classmethod
    def _parse_allowlist(cls, v):
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return None
            if s.startswith("["):
                return json.loads(s)
            return [item.strip() for item in s.split(",") if item.strip()]
        return v


class DirectorySettings(BaseModel):
    api_key: Optional[str] = None
    base_url: str = "https://connect.mailerlite.com/api"
    default_group: Optional[str] = None
    # normalized category -> group id
    group_map: dict[str, str] = Field(default_factory=dict)
    timeout: float = 10.0
    total_timeout: float = 30.0
    max_retries: int = 2

    @field_validator("group_map", mode="before")
    @classmethod
    def _parse_group_map(cls, v):
        if isinstance(v, str):
            v = json.loads(v) if v.strip() else {}
        if isinstance(v, dict):
            return {normalize_category(k): str(g) for k, g in v.items() if normalize_category(k)}
        return v


class AlertSettings(BaseModel):
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    base_url: str = "https://api.telegram.org"
    timeout: float = 5.0
    queue_max: int = Field(default=100, gt=0)


class PaymentSettings(BaseSettings):
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    mpesa: MpesaSettings = Field(default_factory=MpesaSettings)
    callback: CallbackSettings = Field(default_factory=CallbackSettings)
    directory: DirectorySettings = Field(default_factory=DirectorySettings)
    alerts: AlertSettings = Field(default_factory=AlertSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
