"""Client origin helpers shared by middleware and routes."""
from __future__ import annotations

from typing import Optional

from fastapi import Request


def resolve_client_ip(request: Request) -> Optional[str]:
    """
    获取客户端真实IP

    X-Forwarded-For 的第一个地址（原始客户端），其次 X-Real-IP，
    最后是 socket 对端地址。
    """
    x_forwarded_for = request.headers.get("X-Forwarded-For")
    if x_forwarded_for:
        first = x_forwarded_for.split(",")[0].strip()
        if first:
            return first
    real_ip = (request.headers.get("X-Real-IP") or "").strip()
    if real_ip:
        return real_ip
    return request.client.host if request.client else None
