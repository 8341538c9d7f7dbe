"""Alert sink used when no Telegram bot is configured."""
from __future__ import annotations

from core.logging_config import get_logger


logger = get_logger("alerts")


class LoggingAlertSink:
    async def send(self, text: str) -> None:
        logger.warning("operator_alert", text=text)

    async def aclose(self) -> None:
        return None
