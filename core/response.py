"""
统一响应信封: {code, message, data, error}

业务接口与异常处理器共用；支付回调接口不使用信封，直接返回网关要求的
{ResultCode, ResultDesc}。
"""
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_serializer

from shared.codes import BusinessCode


def _utc_z(ts: datetime) -> str:
    ts = ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts.astimezone(timezone.utc)
    return ts.isoformat().replace("+00:00", "Z")


class ErrorDetail(BaseModel):
    type: str
    details: Optional[dict] = None
    field: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer("timestamp")
    def _serialize_timestamp(self, timestamp: datetime) -> str:
        return _utc_z(timestamp)


class Response(BaseModel):
    code: int
    message: str
    data: Any = None
    error: Optional[ErrorDetail] = None

    def render(self) -> dict:
        """JSON-ready dict for JSONResponse content."""
        return self.model_dump(mode="json")


def success_response(data: Any = None, message: str = "ok", code: int = BusinessCode.SUCCESS) -> Response:
    return Response(code=code, message=message, data=data)


def error_response(
    code: int,
    message: str,
    *,
    error_type: str = "BusinessError",
    details: Optional[dict] = None,
    field: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Response:
    """
    构建错误信封

    Args:
        code: 业务状态码（BusinessCode / PaymentCode）
        message: 面向调用方的错误消息
        error_type: 异常类型名，如 GatewayUnavailable
        details: 结构化详情（provider、status_code、retryable 等）
        field: 出错字段（参数校验）
        request_id: 请求ID，便于与日志关联
    """
    return Response(
        code=code,
        message=message,
        error=ErrorDetail(type=error_type, details=details, field=field, request_id=request_id),
    )
