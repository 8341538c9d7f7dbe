import base64
from datetime import datetime, timezone

import pytest

from application.ports.payment_gateway import RawGatewayResponse
from application.services.gateway_client import GatewayClient, build_password, build_timestamp
from core.settings import MpesaSettings
from domain.common.exceptions import ConfigurationError, GatewayRejected, GatewayUnavailable
from tests.fakes import StubTransport, accepted_response, make_settings


FIXED = datetime(2026, 3, 4, 5, 6, 7, tzinfo=timezone.utc)


def _client(transport, config=None):
    return GatewayClient(transport, config or make_settings().mpesa, clock=lambda: FIXED)


def test_timestamp_and_password_format():
    ts = build_timestamp(FIXED)
    assert ts == "20260304050607"
    assert base64.b64decode(build_password("174379", "pk", ts)).decode() == "174379pk20260304050607"


def test_payload_carries_defaults_and_phone(subject):
    client = _client(StubTransport())
    payload = client.build_payload(subject.phone, "20260304050607")
    assert payload["BusinessShortCode"] == "174379"
    assert payload["PartyA"] == payload["PhoneNumber"] == subject.phone
    assert payload["PartyB"] == "174379"
    assert payload["Amount"] == 10
    assert payload["TransactionType"] == "CustomerPayBillOnline"
    assert payload["AccountReference"] == "Payment"
    assert payload["TransactionDesc"] == "Payment"
    assert payload["CallBackURL"].endswith("/callback")


@pytest.mark.asyncio
async def test_request_returns_ticket_with_transaction_id(subject):
    transport = StubTransport(accepted_response("ws_CO_42", "m-42"))
    ticket = await _client(transport).request_push_payment(subject)

    assert ticket.transaction_id == "ws_CO_42"
    assert ticket.merchant_request_id == "m-42"
    assert transport.auth_calls == [("key", "secret")]
    credential, payload = transport.submissions[0]
    assert credential == "access-token"
    assert payload["Timestamp"] == "20260304050607"


@pytest.mark.asyncio
async def test_missing_configuration_fails_before_network(subject):
    transport = StubTransport()
    config = MpesaSettings(consumer_key="k", shortcode="1")
    with pytest.raises(ConfigurationError) as exc:
        await GatewayClient(transport, config).request_push_payment(subject)
    assert "MPESA__PASSKEY" in exc.value.details["missing"]
    assert transport.auth_calls == [] and transport.submissions == []


@pytest.mark.asyncio
async def test_non_2xx_is_rejected_with_raw_body(subject):
    body = b'{"requestId":"1","errorCode":"400.002.02","errorMessage":"Bad Request - Invalid PhoneNumber"}'
    transport = StubTransport(RawGatewayResponse(status_code=400, body=body))
    with pytest.raises(GatewayRejected) as exc:
        await _client(transport).request_push_payment(subject)
    assert exc.value.status_code == 400
    assert "Invalid PhoneNumber" in exc.value.raw_body
    assert exc.value.details["provider_code"] == "400.002.02"


@pytest.mark.asyncio
async def test_non_zero_response_code_is_rejected(subject):
    body = b'{"ResponseCode":"1","ResponseDescription":"Rejected"}'
    transport = StubTransport(RawGatewayResponse(status_code=200, body=body))
    with pytest.raises(GatewayRejected):
        await _client(transport).request_push_payment(subject)


@pytest.mark.asyncio
async def test_unparseable_or_incomplete_success_yields_ticket_without_id(subject):
    ticket = await _client(StubTransport(RawGatewayResponse(status_code=200, body=b"<html>ok</html>"))).request_push_payment(subject)
    assert ticket.transaction_id is None

    ticket = await _client(StubTransport(accepted_response(None))).request_push_payment(subject)
    assert ticket.transaction_id is None
    assert ticket.merchant_request_id == "29115-34620561-1"


@pytest.mark.asyncio
async def test_transport_unavailability_propagates(subject):
    transport = StubTransport(error=GatewayUnavailable("stk_push timed out"))
    with pytest.raises(GatewayUnavailable):
        await _client(transport).request_push_payment(subject)
    assert len(transport.submissions) == 1
