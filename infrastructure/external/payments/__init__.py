"""
Factory for payment gateway transports.
"""
from __future__ import annotations

from typing import Optional

from application.ports.payment_gateway import GatewayTransport
from core.settings import PaymentSettings


def get_gateway_transport(provider: Optional[str] = None, config: Optional[PaymentSettings] = None) -> GatewayTransport:
    name = (provider or "mpesa").lower()
    if name in {"mpesa", "daraja"}:
        from .mpesa_client import DarajaTransport
        return DarajaTransport(config)
    raise ValueError(f"Unsupported payment provider: {name}")
