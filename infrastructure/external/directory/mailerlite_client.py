"""
MailerLite (connect API) adapter for the DirectoryPort.

- GET    subscribers/{email}              -> {"data": {"id", "groups": [{"id"}]}}
- DELETE subscribers/{id}/groups/{group}
- POST   subscribers                      -> create or update by email
"""
from __future__ import annotations

from typing import Any, Optional
from urllib.parse import quote

import httpx

from application.ports.directory import DirectoryEntry, SubscriberRecord
from core.logging_config import get_logger
from core.settings import DirectorySettings, payment_settings
from domain.common.exceptions import ConfigurationError, DownstreamSideEffectFailure
from infrastructure.external.api_clients import APIError, BaseAPIClient, NotFoundError


logger = get_logger(__name__)


class MailerLiteClient(BaseAPIClient):
    def __init__(self, config: Optional[DirectorySettings] = None, *, transport: Optional[httpx.AsyncBaseTransport] = None):
        cfg = config or payment_settings.directory
        self.configured = bool(cfg.api_key)
        super().__init__(
            base_url=cfg.base_url,
            timeout=cfg.timeout,
            max_retries=cfg.max_retries,
            auth_token=cfg.api_key,
            transport=transport,
        )

    def _require_key(self) -> None:
        if not self.configured:
            raise ConfigurationError("directory", ["DIRECTORY__API_KEY"])

    async def find_by_subject_id(self, subject_id: str) -> Optional[DirectoryEntry]:
        self._require_key()
        try:
            response = await self.get(f"subscribers/{quote(subject_id, safe='@')}")
        except NotFoundError:
            return None
        except APIError as exc:
            raise DownstreamSideEffectFailure(str(exc), operation="find_subscriber", details={"status_code": exc.status_code}) from exc

        data: Any = response.data.get("data") if isinstance(response.data, dict) else None
        if not isinstance(data, dict) or not data.get("id"):
            return None
        groups = [str(g.get("id")) for g in data.get("groups") or [] if isinstance(g, dict) and g.get("id") is not None]
        return DirectoryEntry(id=str(data["id"]), groups=groups)

    async def remove_from_group(self, entry_id: str, group_id: str) -> None:
        self._require_key()
        try:
            await self.delete(f"subscribers/{entry_id}/groups/{group_id}")
        except NotFoundError:
            logger.info("directory_membership_already_absent", subscriber_id=entry_id, group_id=group_id)
        except APIError as exc:
            raise DownstreamSideEffectFailure(str(exc), operation="remove_from_group", details={"status_code": exc.status_code}) from exc

    async def upsert(self, record: SubscriberRecord) -> None:
        self._require_key()
        payload = {"email": record.email, "fields": record.fields(), "groups": [record.group_id]}
        try:
            await self.post("subscribers", json_data=payload)
        except APIError as exc:
            raise DownstreamSideEffectFailure(str(exc), operation="upsert_subscriber", details={"status_code": exc.status_code}) from exc

    async def aclose(self) -> None:
        await self.close()
