"""
API依赖项 - 支付运行时装配（composition root）

The lifespan in main.py builds one PaymentRuntime per process and keeps it
on ``app.state``; routes receive the PaymentService through ``Depends``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from fastapi import Request

from application.ports.alerts import AlertPort
from application.ports.directory import DirectoryPort
from application.ports.payment_gateway import GatewayTransport
from application.services.callback_validator import CallbackValidator
from application.services.enrollment_service import EnrollmentService
from application.services.gateway_client import GatewayClient
from application.services.notification_service import AlertNotifier
from application.services.payment_service import PaymentService
from application.services.reconciliation_service import ReconciliationService
from core.config import PendingStoreSettings, settings
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from domain.payment.repository import PendingStore
from infrastructure.pending import InMemoryPendingStore, RedisPendingStore
from infrastructure.tasks import PendingSweeper


logger = get_logger(__name__)


@dataclass
class PaymentRuntime:
    store: PendingStore
    notifier: AlertNotifier
    service: PaymentService
    sweeper: PendingSweeper
    closeables: list[Any] = field(default_factory=list)

    def start(self) -> None:
        self.notifier.start()
        self.sweeper.start()

    async def aclose(self) -> None:
        await self.sweeper.aclose()
        await self.notifier.aclose()
        for resource in self.closeables:
            close = getattr(resource, "aclose", None)
            if callable(close):
                try:
                    await close()
                except Exception as exc:
                    logger.warning("runtime_resource_close_failed", resource=type(resource).__name__, error=str(exc))
        await self.store.aclose()


async def build_pending_store(config: Optional[PendingStoreSettings] = None) -> PendingStore:
    cfg = config or settings.pending
    if cfg.backend == "redis":
        from infrastructure.external.cache import init_redis_client

        client = await init_redis_client()
        logger.info("pending_store_selected", backend="redis", ttl_seconds=cfg.ttl_seconds)
        return RedisPendingStore(client, ttl_seconds=cfg.ttl_seconds, namespace=settings.redis.namespace)
    logger.info("pending_store_selected", backend="memory", ttl_seconds=cfg.ttl_seconds, shards=cfg.shards)
    return InMemoryPendingStore(ttl_seconds=cfg.ttl_seconds, shards=cfg.shards)


def build_payment_runtime(
    store: PendingStore,
    *,
    transport: Optional[GatewayTransport] = None,
    directory: Optional[DirectoryPort] = None,
    alert_sink: Optional[AlertPort] = None,
    config: Optional[PaymentSettings] = None,
    sweep_interval_seconds: Optional[float] = None,
) -> PaymentRuntime:
    """Wire the payment use-cases; adapters default to the configured ones."""
    cfg = config or payment_settings
    if transport is None:
        from infrastructure.external.payments import get_gateway_transport
        transport = get_gateway_transport(config=cfg)
    if directory is None:
        from infrastructure.external.directory import get_directory
        directory = get_directory()
    if alert_sink is None:
        from infrastructure.external.alerts import get_alert_sink
        alert_sink = get_alert_sink(cfg.alerts)

    notifier = AlertNotifier(alert_sink, queue_max=cfg.alerts.queue_max, send_timeout=cfg.alerts.timeout)
    validator = CallbackValidator(cfg.callback)
    if not validator.has_trust_mechanism:
        logger.warning("callback_trust_unconfigured", message="No callback allowlist or token configured; all well-formed callbacks are trusted")
    reconciler = ReconciliationService(
        store,
        EnrollmentService(directory, cfg.directory),
        notifier,
        enrollment_timeout=cfg.directory.total_timeout,
    )
    service = PaymentService(
        store,
        GatewayClient(transport, cfg.mpesa),
        validator,
        reconciler,
        notifier,
        callback_config=cfg.callback,
    )
    sweeper = PendingSweeper(store, interval_seconds=sweep_interval_seconds or settings.pending.sweep_interval_seconds)
    return PaymentRuntime(
        store=store,
        notifier=notifier,
        service=service,
        sweeper=sweeper,
        closeables=[transport, directory, alert_sink],
    )


async def get_payment_service(request: Request) -> PaymentService:
    runtime: Optional[PaymentRuntime] = getattr(request.app.state, "payment_runtime", None)
    if runtime is None:
        raise RuntimeError("payment runtime not initialised")
    return runtime.service
