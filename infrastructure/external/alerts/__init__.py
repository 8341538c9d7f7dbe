"""
Factory for the operator alert sink.
"""
from __future__ import annotations

from typing import Optional

from application.ports.alerts import AlertPort
from core.settings import AlertSettings, payment_settings
from .logging_sink import LoggingAlertSink
from .telegram import TelegramAlertSink


def get_alert_sink(config: Optional[AlertSettings] = None) -> AlertPort:
    cfg = config or payment_settings.alerts
    if cfg.telegram_bot_token and cfg.telegram_chat_id:
        return TelegramAlertSink(cfg)
    return LoggingAlertSink()


__all__ = ["LoggingAlertSink", "TelegramAlertSink", "get_alert_sink"]
