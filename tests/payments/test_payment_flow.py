import asyncio

import pytest

from api.dependencies import build_payment_runtime
from application.dtos.payments import InitiatePayment
from application.ports.payment_gateway import RawGatewayResponse
from application.services.callback_validator import InboundCallback
from domain.common.exceptions import GatewayRejected, GatewayUnavailable
from domain.payment.entity import IntentState
from infrastructure.pending import InMemoryPendingStore
from tests.fakes import FakeDirectory, RecordingAlertSink, StubTransport, accepted_response, make_settings, stk_callback


CMD = InitiatePayment(name="A", email="a@x.com", phone="0712345678", category="retail")


def _runtime(transport=None, directory=None, sink=None, **callback):
    store = InMemoryPendingStore()
    runtime = build_payment_runtime(
        store,
        transport=transport or StubTransport(accepted_response("ws_1")),
        directory=directory or FakeDirectory(),
        alert_sink=sink or RecordingAlertSink(),
        config=make_settings(**callback),
    )
    return store, runtime


@pytest.mark.asyncio
async def test_initiate_then_callback_enrolls_once():
    directory, sink = FakeDirectory(), RecordingAlertSink()
    store, runtime = _runtime(directory=directory, sink=sink)
    service = runtime.service

    result = await service.initiate(CMD)
    assert result.status == "pending"
    assert result.correlation_key == "ws_1"
    assert await store.count() == 1
    pending = await store.get("ws_1")
    assert pending.state is IntentState.AWAITING_CALLBACK
    assert pending.subject.phone == "254712345678"

    body = stk_callback("ws_1", items=[{"Name": "PhoneNumber", "Value": 254712345678}])
    ack = await service.handle_callback(InboundCallback(body=body, origin="196.201.214.200"))

    assert ack.model_dump() == {"ResultCode": 0, "ResultDesc": "Accepted"}
    (record,) = directory.upserts
    assert record.email == "a@x.com"
    assert record.group_id == "retail-group"
    assert await store.get("ws_1") is None

    # redelivery: no second enrollment, one alert
    again = await service.handle_callback(InboundCallback(body=body, origin="196.201.214.200"))
    await runtime.notifier.flush()
    assert again.ResultCode == 0
    assert len(directory.upserts) == 1
    assert len(sink.messages) == 1
    await runtime.aclose()


@pytest.mark.asyncio
async def test_initiation_result_serializes_camel_case():
    _, runtime = _runtime()
    result = await runtime.service.initiate(CMD)
    dumped = result.model_dump(mode="json", by_alias=True)
    assert dumped["status"] == "pending"
    assert dumped["correlationKey"] == "ws_1"
    assert dumped["gatewayTicket"]["CheckoutRequestID"] == "ws_1"


@pytest.mark.asyncio
async def test_ticket_without_transaction_id_stays_under_temp_key():
    store, runtime = _runtime(transport=StubTransport(accepted_response(None)))
    result = await runtime.service.initiate(CMD)

    assert result.correlation_key.startswith("local-")
    pending = await store.get(result.correlation_key)
    assert pending.state is IntentState.AWAITING_GATEWAY_ID


@pytest.mark.parametrize(
    "transport",
    [
        StubTransport(error=GatewayUnavailable("stk_push timed out")),
        StubTransport(RawGatewayResponse(status_code=500, body=b"oops")),
    ],
)
@pytest.mark.asyncio
async def test_initiation_failure_leaves_no_pending_record(transport):
    store, runtime = _runtime(transport=transport)
    with pytest.raises((GatewayUnavailable, GatewayRejected)):
        await runtime.service.initiate(CMD)
    assert await store.count() == 0


@pytest.mark.asyncio
async def test_untrusted_origin_alert_and_continue_still_reconciles():
    directory, sink = FakeDirectory(), RecordingAlertSink()
    _, runtime = _runtime(directory=directory, sink=sink, ip_allowlist=["196.201.214.0/24"], untrusted_policy="alert_and_continue")
    await runtime.service.initiate(CMD)

    ack = await runtime.service.handle_callback(InboundCallback(body=stk_callback("ws_1"), origin="8.8.8.8"))
    await runtime.notifier.flush()

    assert ack.ResultCode == 0 and not ack.rejected
    assert len(sink.messages) == 1
    assert "Untrusted" in sink.messages[0]
    assert len(directory.upserts) == 1


@pytest.mark.asyncio
async def test_untrusted_origin_reject_policy_keeps_record():
    directory, sink = FakeDirectory(), RecordingAlertSink()
    store, runtime = _runtime(directory=directory, sink=sink, token="s3cret", untrusted_policy="reject")
    await runtime.service.initiate(CMD)

    ack = await runtime.service.handle_callback(InboundCallback(body=stk_callback("ws_1"), origin="8.8.8.8", token="wrong"))
    await runtime.notifier.flush()

    assert ack.rejected and ack.ResultCode == 0
    assert directory.upserts == []
    assert len(sink.messages) == 1
    assert await store.get("ws_1") is not None


@pytest.mark.asyncio
async def test_malformed_callback_acknowledged_without_alert():
    sink = RecordingAlertSink()
    _, runtime = _runtime(sink=sink)
    ack = await runtime.service.handle_callback(InboundCallback(body={"hello": "world"}))
    await runtime.notifier.flush()
    assert ack.model_dump() == {"ResultCode": 0, "ResultDesc": "Accepted"}
    assert sink.messages == []


@pytest.mark.asyncio
async def test_unexpected_error_still_acknowledged():
    _, runtime = _runtime()

    async def _explode(event):
        raise RuntimeError("bug")

    runtime.service.reconciler.reconcile = _explode
    ack = await runtime.service.handle_callback(InboundCallback(body=stk_callback("ws_1")))
    assert ack.ResultCode == 0


@pytest.mark.asyncio
async def test_intent_status():
    _, runtime = _runtime()
    await runtime.service.initiate(CMD)
    assert (await runtime.service.intent_status("ws_1")).state == "awaiting_callback"
    assert (await runtime.service.intent_status("nope")).state == "unknown"


class _GatedRekeyStore(InMemoryPendingStore):
    def __init__(self, *, succeed: bool = True):
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.succeed = succeed

    async def rekey(self, *args, **kwargs):
        self.entered.set()
        await self.release.wait()
        if not self.succeed:
            return False
        return await super().rekey(*args, **kwargs)


def _gated_runtime(store, directory, **callback):
    return build_payment_runtime(
        store,
        transport=StubTransport(accepted_response("ws_1")),
        directory=directory,
        alert_sink=RecordingAlertSink(),
        config=make_settings(**callback),
    )


@pytest.mark.asyncio
async def test_callback_racing_the_rekey_waits_and_enrolls():
    store, directory = _GatedRekeyStore(), FakeDirectory()
    runtime = _gated_runtime(store, directory)

    initiating = asyncio.create_task(runtime.service.initiate(CMD))
    await store.entered.wait()
    callback = asyncio.create_task(runtime.service.handle_callback(InboundCallback(body=stk_callback("ws_1"))))
    await asyncio.sleep(0.01)
    assert not callback.done()

    store.release.set()
    assert (await initiating).correlation_key == "ws_1"
    assert (await callback).ResultCode == 0
    assert len(directory.upserts) == 1
    assert await store.count() == 0
    await runtime.aclose()


@pytest.mark.asyncio
async def test_callback_after_failed_rekey_is_unmatched():
    store, directory = _GatedRekeyStore(succeed=False), FakeDirectory()
    runtime = _gated_runtime(store, directory)

    initiating = asyncio.create_task(runtime.service.initiate(CMD))
    await store.entered.wait()
    callback = asyncio.create_task(runtime.service.handle_callback(InboundCallback(body=stk_callback("ws_1"))))
    store.release.set()

    result = await initiating
    assert (await callback).ResultCode == 0
    assert result.correlation_key.startswith("local-")
    assert directory.upserts == []
    # record left under its temp key until the TTL sweep
    assert await store.count() == 1
    await runtime.aclose()


@pytest.mark.asyncio
async def test_rekey_wait_is_bounded():
    store, directory = _GatedRekeyStore(), FakeDirectory()
    runtime = _gated_runtime(store, directory, rekey_wait_seconds=0.05)

    initiating = asyncio.create_task(runtime.service.initiate(CMD))
    await store.entered.wait()
    ack = await runtime.service.handle_callback(InboundCallback(body=stk_callback("ws_1")))

    assert ack.ResultCode == 0
    assert directory.upserts == []
    store.release.set()
    await initiating
    await runtime.aclose()
