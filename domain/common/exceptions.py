"""领域层业务异常定义，供领域、应用与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Any, Optional, Sequence

from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class ConfigurationError(BusinessException):
    """Required secret or credential is missing."""

    def __init__(self, component: str, missing: Sequence[str]):
        super().__init__(
            code=PaymentCode.CONFIGURATION_ERROR,
            message=f"{component} configuration incomplete: missing {', '.join(missing)}",
            error_type="ConfigurationError",
            details={"component": component, "missing": list(missing)},
        )


class GatewayUnavailable(BusinessException):
    """Network failure or timeout talking to the payment gateway (retryable)."""

    def __init__(self, message: str, *, provider: str = "mpesa", details: Optional[dict] = None):
        full_details: dict[str, Any] = {"provider": provider, "retryable": True}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_RECOVERABLE,
            message=message,
            error_type="GatewayUnavailable",
            details=full_details,
        )


class GatewayRejected(BusinessException):
    """Gateway answered with a non-success status; the raw body is kept for diagnostics."""

    def __init__(
        self,
        message: str,
        *,
        provider: str = "mpesa",
        status_code: int | None = None,
        raw_body: str | None = None,
        provider_code: str | None = None,
    ):
        self.status_code = status_code
        self.raw_body = raw_body
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type="GatewayRejected",
            details={
                "provider": provider,
                "status_code": status_code,
                "provider_code": provider_code,
                "raw_body": raw_body,
            },
        )


class DownstreamSideEffectFailure(BusinessException):
    """The enrollment side effect could not be applied."""

    def __init__(self, message: str, *, operation: str, details: Optional[dict] = None):
        full_details: dict[str, Any] = {"operation": operation}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.DOWNSTREAM_ERROR,
            message=message,
            error_type="DownstreamSideEffectFailure",
            details=full_details,
        )
