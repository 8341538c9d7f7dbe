"""
Application service orchestrating the STK push use-cases.

Depends only on application ports, services and the PendingStore interface.
Concrete adapters are injected from the composition root (api/dependencies,
main lifespan), keeping dependencies one-way.
"""
from __future__ import annotations

import asyncio
import uuid
from typing import Optional

from application.dtos.payments import CallbackAck, InitiatePayment, InitiationResult, IntentStatus
from application.services.callback_validator import CallbackValidator, InboundCallback, Verdict
from application.services.gateway_client import GatewayClient
from application.services.notification_service import AlertNotifier
from application.services.reconciliation_service import ReconciliationService
from core.logging_config import get_logger
from core.settings import CallbackSettings, payment_settings
from domain.payment.entity import PaymentIntent, Subject
from domain.payment.repository import PendingStore


logger = get_logger(__name__)


def new_temp_key() -> str:
    return f"local-{uuid.uuid4().hex}"


class PaymentService:
    def __init__(
        self,
        store: PendingStore,
        gateway: GatewayClient,
        validator: CallbackValidator,
        reconciler: ReconciliationService,
        notifier: AlertNotifier,
        *,
        callback_config: Optional[CallbackSettings] = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.validator = validator
        self.reconciler = reconciler
        self.notifier = notifier
        self.callback_config = callback_config or payment_settings.callback
        # transaction id -> set once its rekey has settled
        self._rekeying: dict[str, asyncio.Event] = {}

    async def initiate(self, cmd: InitiatePayment) -> InitiationResult:
        subject = Subject(name=cmd.name, email=str(cmd.email), phone=cmd.phone, category=cmd.category)
        temp_key = new_temp_key()
        await self.store.put(temp_key, PaymentIntent(correlation_key=temp_key, subject=subject, amount=self.gateway.config.amount))
        logger.info("payment_initiate_request", correlation_key=temp_key, category=subject.category)

        try:
            ticket = await self.gateway.request_push_payment(subject)
        except BaseException:
            await self.store.take_if_present(temp_key)
            raise

        live_key = temp_key
        if ticket.transaction_id:
            settled = asyncio.Event()
            self._rekeying[ticket.transaction_id] = settled
            try:
                if await self.store.rekey(temp_key, ticket.transaction_id, merchant_request_id=ticket.merchant_request_id):
                    live_key = ticket.transaction_id
                else:
                    logger.error("payment_rekey_failed", temp_key=temp_key, transaction_id=ticket.transaction_id)
            finally:
                self._rekeying.pop(ticket.transaction_id, None)
                settled.set()
        logger.info("payment_initiate_pending", correlation_key=live_key, transaction_id=ticket.transaction_id)
        return InitiationResult(correlation_key=live_key, gateway_ticket=ticket.raw_response)

    async def handle_callback(self, inbound: InboundCallback) -> CallbackAck:
        """Every path returns the neutral acknowledgment; nothing propagates."""
        try:
            return await self._handle_callback(inbound)
        except Exception as exc:
            logger.exception("callback_handling_error", error=str(exc), origin=inbound.origin)
            return CallbackAck(ResultDesc="Accepted")

    async def _handle_callback(self, inbound: InboundCallback) -> CallbackAck:
        result = self.validator.validate(inbound)
        if result.verdict is Verdict.MALFORMED:
            logger.warning("callback_malformed", origin=inbound.origin, reason=result.reason)
            return CallbackAck(ResultDesc="Accepted")

        event = result.event
        assert event is not None
        if result.verdict is Verdict.UNTRUSTED:
            reject = self.callback_config.untrusted_policy == "reject"
            logger.warning(
                "callback_untrusted",
                origin=inbound.origin,
                reason=result.reason,
                correlation_key=event.claimed_correlation_key,
                policy=self.callback_config.untrusted_policy,
            )
            self.notifier.notify(
                f"Untrusted STK callback ({'rejected' if reject else 'processed'})\n"
                f"Origin: {inbound.origin or 'unknown'}\nReason: {result.reason}\n"
                f"CheckoutRequestID: {event.claimed_correlation_key}"
            )
            if reject:
                return CallbackAck(ResultDesc="Rejected", rejected=True)

        await self._await_rekey(event.claimed_correlation_key)
        outcome = await self.reconciler.reconcile(event)
        logger.info("callback_reconciled", correlation_key=outcome.correlation_key, outcome=outcome.outcome.value)
        return CallbackAck(ResultDesc="Accepted")

    async def _await_rekey(self, key: str) -> None:
        """Hold a callback that raced ahead of its own rekey until the move settles."""
        settled = self._rekeying.get(key)
        if settled is None:
            return
        logger.info("callback_waiting_for_rekey", correlation_key=key)
        try:
            await asyncio.wait_for(settled.wait(), timeout=self.callback_config.rekey_wait_seconds)
        except asyncio.TimeoutError:
            logger.warning("callback_rekey_wait_timeout", correlation_key=key)

    async def intent_status(self, key: str) -> IntentStatus:
        intent = await self.store.get(key)
        return IntentStatus(correlation_key=key, state=intent.state.value if intent else "unknown")
