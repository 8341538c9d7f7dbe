"""
Enroll a paying subject into the directory group chosen by their category.

Re-enrollment re-arms the membership: an existing member is removed from
the group first and then added again, refreshing the directory's recency.
"""
from __future__ import annotations

from typing import Optional

from application.ports.directory import DirectoryPort, SubscriberRecord
from core.logging_config import get_logger
from core.settings import DirectorySettings, normalize_category, payment_settings
from domain.common.exceptions import ConfigurationError
from domain.payment.entity import CallbackEvent, Subject


logger = get_logger(__name__)


class EnrollmentService:
    def __init__(self, directory: DirectoryPort, config: Optional[DirectorySettings] = None) -> None:
        self.directory = directory
        self.config = config or payment_settings.directory

    def resolve_group(self, category: str) -> str:
        group = self.config.group_map.get(normalize_category(category))
        if group:
            return group
        if self.config.default_group:
            return self.config.default_group
        raise ConfigurationError("directory", ["DIRECTORY__DEFAULT_GROUP"])

    def build_record(self, subject: Subject, group_id: str, event: Optional[CallbackEvent] = None) -> SubscriberRecord:
        return SubscriberRecord(
            email=subject.email,
            group_id=group_id,
            name=subject.name,
            phone=(event.phone_number if event else None) or subject.phone,
            category=subject.category,
            receipt_number=event.receipt_number if event else None,
            amount=event.amount if event else None,
        )

    async def enroll(self, subject: Subject, event: Optional[CallbackEvent] = None) -> str:
        """Returns the group id the subject was enrolled into."""
        group_id = self.resolve_group(subject.category)
        existing = await self.directory.find_by_subject_id(subject.email)
        rearm = existing is not None and existing.in_group(group_id)
        if rearm:
            logger.info("directory_rearm_membership", subscriber_id=existing.id, group_id=group_id)
            await self.directory.remove_from_group(existing.id, group_id)
        await self.directory.upsert(self.build_record(subject, group_id, event))
        logger.info("directory_enrolled", group_id=group_id, category=subject.category, rearmed=rearm)
        return group_id
