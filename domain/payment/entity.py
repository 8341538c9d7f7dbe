"""
支付领域实体 - 待回调的支付意图 (payment intent) 及回调事件
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from domain.common.exceptions import DomainValidationException


class IntentState(str, Enum):
    """支付意图状态"""
    AWAITING_GATEWAY_ID = "awaiting_gateway_id"  # 网关尚未返回交易号
    AWAITING_CALLBACK = "awaiting_callback"      # 已按网关交易号登记，等待回调
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    EXPIRED = "expired"                          # TTL 清理回收

    @property
    def is_resolved(self) -> bool:
        return self in (IntentState.SUCCEEDED, IntentState.FAILED, IntentState.EXPIRED)


def _ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Subject:
    """Identity data needed to enroll the payer once the payment succeeds."""

    name: str
    email: str
    phone: str
    category: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "email": self.email, "phone": self.phone, "category": self.category}


@dataclass
class PaymentIntent:
    """
    支付意图 - 请求与回调之间的关联单元

    业务规则：
    1. correlation_key 只能重新绑定一次（本地临时键 -> 网关交易号）
    2. 只能从等待状态解析一次（成功/失败/过期）
    3. subject 与 created_at 创建后不可变
    """

    correlation_key: str
    subject: Subject
    amount: int
    created_at: datetime = field(default_factory=utc_now)
    state: IntentState = IntentState.AWAITING_GATEWAY_ID
    merchant_request_id: Optional[str] = None
    failure_reason: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.correlation_key:
            raise DomainValidationException("correlation key must not be empty", field="correlation_key")
        if self.amount <= 0:
            raise DomainValidationException(f"amount must be positive: {self.amount}", field="amount")
        self.created_at = _ensure_utc(self.created_at)

    def bind_gateway_id(self, transaction_id: str, merchant_request_id: Optional[str] = None) -> None:
        """AwaitingGatewayId -> AwaitingCallback under the gateway's transaction id."""
        if self.state is not IntentState.AWAITING_GATEWAY_ID:
            raise DomainValidationException(
                f"cannot bind gateway id in state {self.state.value}",
                field="state",
            )
        if not transaction_id:
            raise DomainValidationException("transaction id must not be empty", field="correlation_key")
        self.correlation_key = transaction_id
        if merchant_request_id:
            self.merchant_request_id = merchant_request_id
        self.state = IntentState.AWAITING_CALLBACK

    def resolve(self, succeeded: bool, reason: Optional[str] = None) -> None:
        if self.state.is_resolved:
            raise DomainValidationException(
                f"intent {self.correlation_key} already resolved as {self.state.value}",
                field="state",
            )
        self.state = IntentState.SUCCEEDED if succeeded else IntentState.FAILED
        self.failure_reason = None if succeeded else reason

    def expire(self) -> None:
        if not self.state.is_resolved:
            self.state = IntentState.EXPIRED

    def is_expired(self, max_age: timedelta, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) - self.created_at >= max_age

    def copy(self) -> "PaymentIntent":
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "correlation_key": self.correlation_key,
            "subject": self.subject.to_dict(),
            "amount": self.amount,
            "created_at": self.created_at.isoformat(),
            "state": self.state.value,
            "merchant_request_id": self.merchant_request_id,
            "failure_reason": self.failure_reason,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PaymentIntent":
        return cls(
            correlation_key=data["correlation_key"],
            subject=Subject(**data["subject"]),
            amount=int(data["amount"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            state=IntentState(data["state"]),
            merchant_request_id=data.get("merchant_request_id"),
            failure_reason=data.get("failure_reason"),
        )


@dataclass(frozen=True)
class CallbackEvent:
    """Inbound gateway report. Transient: built per request, never stored."""

    source_origin: Optional[str]
    claimed_correlation_key: str
    result_code: int
    result_desc: Optional[str] = None
    merchant_request_id: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    auth_token: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.result_code == 0

    @property
    def phone_number(self) -> Optional[str]:
        value = self.metadata.get("PhoneNumber")
        return str(value) if value not in (None, "") else None

    @property
    def receipt_number(self) -> Optional[str]:
        value = self.metadata.get("MpesaReceiptNumber")
        return str(value) if value not in (None, "") else None

    @property
    def amount(self) -> Optional[Any]:
        return self.metadata.get("Amount")
