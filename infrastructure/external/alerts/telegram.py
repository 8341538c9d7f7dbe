"""Telegram bot alert sink: POST {base}/bot{token}/sendMessage."""
from __future__ import annotations

from typing import Optional

import httpx

from core.settings import AlertSettings
from infrastructure.external.api_clients import BaseAPIClient

# Telegram rejects messages longer than this
MAX_MESSAGE_LENGTH = 4096


class TelegramAlertSink(BaseAPIClient):
    def __init__(self, config: AlertSettings, *, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(
            base_url=f"{config.base_url.rstrip('/')}/bot{config.telegram_bot_token}",
            timeout=config.timeout,
            max_retries=0,
            transport=transport,
        )
        self.chat_id = config.telegram_chat_id

    async def send(self, text: str) -> None:
        await self.post("sendMessage", json_data={"chat_id": self.chat_id, "text": text[:MAX_MESSAGE_LENGTH]})

    async def aclose(self) -> None:
        await self.close()
