"""
Reconciliation of gateway callbacks against pending payment intents.

``take_if_present`` is the only lookup: a record is read and removed in one
step, so a redelivered callback finds nothing and the enrollment side effect
runs at most once per intent.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from application.services.enrollment_service import EnrollmentService
from application.services.notification_service import AlertNotifier
from core.logging_config import get_logger
from domain.payment.entity import CallbackEvent
from domain.payment.repository import PendingStore
from shared.codes.payment_codes import describe_result_code


logger = get_logger(__name__)


class ReconcileOutcome(str, Enum):
    PROCESSED = "processed"
    IGNORED = "ignored"
    NO_MATCH = "no_match"


@dataclass(frozen=True)
class ReconcileResult:
    outcome: ReconcileOutcome
    correlation_key: str
    group_id: Optional[str] = None
    enrollment_failed: bool = False


class ReconciliationService:
    def __init__(
        self,
        store: PendingStore,
        enrollment: EnrollmentService,
        notifier: AlertNotifier,
        *,
        enrollment_timeout: float = 30.0,
    ) -> None:
        self.store = store
        self.enrollment = enrollment
        self.notifier = notifier
        self.enrollment_timeout = enrollment_timeout

    async def reconcile(self, event: CallbackEvent) -> ReconcileResult:
        key = event.claimed_correlation_key
        intent = await self.store.take_if_present(key)
        if intent is None:
            logger.warning("callback_no_match", correlation_key=key, origin=event.source_origin, result_code=event.result_code)
            self.notifier.notify(
                f"Unmatched STK callback\nCheckoutRequestID: {key}\nOrigin: {event.source_origin or 'unknown'}\n"
                f"ResultCode: {event.result_code}"
            )
            return ReconcileResult(ReconcileOutcome.NO_MATCH, key)

        if not event.succeeded:
            intent.resolve(False, describe_result_code(event.result_code))
            logger.info(
                "callback_payment_not_completed",
                correlation_key=key,
                result_code=event.result_code,
                reason=intent.failure_reason,
                result_desc=event.result_desc,
            )
            return ReconcileResult(ReconcileOutcome.IGNORED, key)

        intent.resolve(True)
        logger.info("callback_payment_succeeded", correlation_key=key, receipt=event.receipt_number)
        try:
            group_id = await asyncio.wait_for(
                self.enrollment.enroll(intent.subject, event), timeout=self.enrollment_timeout
            )
        except Exception as exc:
            logger.error(
                "enrollment_failed",
                correlation_key=key,
                email=intent.subject.email,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            self.notifier.notify(
                f"Enrollment failed after successful payment\nCheckoutRequestID: {key}\n"
                f"Subject: {intent.subject.name} <{intent.subject.email}>\nCategory: {intent.subject.category}\n"
                f"Error: {type(exc).__name__}: {exc}"
            )
            return ReconcileResult(ReconcileOutcome.PROCESSED, key, enrollment_failed=True)
        return ReconcileResult(ReconcileOutcome.PROCESSED, key, group_id=group_id)
