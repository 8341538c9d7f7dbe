"""
Payment gateway port (application/ports) exposing a replaceable protocol.

The application GatewayClient builds and interprets push-payment requests;
infrastructure adapters only move bytes to and from the gateway.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class RawGatewayResponse:
    status_code: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json_or_none(self) -> Optional[Any]:
        """Gateway bodies are untrusted: non-JSON degrades to None."""
        try:
            return json.loads(self.body)
        except (ValueError, UnicodeDecodeError):
            return None


@runtime_checkable
class GatewayTransport(Protocol):
    """Transport to the push-payment gateway.

    ``authenticate`` raises GatewayUnavailable / GatewayRejected;
    ``submit`` raises GatewayUnavailable and otherwise returns the raw
    response whatever its status.
    """

    provider: str

    async def authenticate(self, key: str, secret: str) -> str: ...

    async def submit(self, credential: str, payload: dict[str, Any]) -> RawGatewayResponse: ...
