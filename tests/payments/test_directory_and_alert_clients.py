import json
import time

import httpx
import pytest

from application.ports.directory import SubscriberRecord
from core.settings import AlertSettings, DirectorySettings
from domain.common.exceptions import ConfigurationError, DownstreamSideEffectFailure
from infrastructure.external.alerts import LoggingAlertSink, TelegramAlertSink, get_alert_sink
from infrastructure.external.api_clients import APIError
from infrastructure.external.directory import MailerLiteClient


BASE = "https://ml.test/api"


def _mailerlite(handler, **overrides) -> MailerLiteClient:
    cfg = DirectorySettings(api_key="ml-key", base_url=BASE, max_retries=1, **overrides)
    return MailerLiteClient(cfg, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_find_returns_entry_with_groups():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/subscribers/a@x.com"
        assert request.headers["Authorization"] == "Bearer ml-key"
        return httpx.Response(200, json={"data": {"id": "123", "email": "a@x.com", "groups": [{"id": "g1"}, {"id": 42}]}})

    entry = await _mailerlite(handler).find_by_subject_id("a@x.com")
    assert entry.id == "123"
    assert entry.groups == ["g1", "42"]
    assert entry.in_group("42")


@pytest.mark.asyncio
async def test_find_missing_subscriber_is_none():
    entry = await _mailerlite(lambda r: httpx.Response(404, json={"message": "Resource not found."})).find_by_subject_id("b@x.com")
    assert entry is None


@pytest.mark.asyncio
async def test_remove_and_upsert_requests():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path, json.loads(request.content) if request.content else None))
        return httpx.Response(204 if request.method == "DELETE" else 200, json={} if request.method != "DELETE" else None)

    client = _mailerlite(handler)
    await client.remove_from_group("123", "g1")
    await client.upsert(SubscriberRecord(email="a@x.com", group_id="g1", name="A", phone="254712345678", category="retail"))

    assert seen[0] == ("DELETE", "/api/subscribers/123/groups/g1", None)
    method, path, body = seen[1]
    assert (method, path) == ("POST", "/api/subscribers")
    assert body == {
        "email": "a@x.com",
        "fields": {"name": "A", "phone": "254712345678", "industry": "retail"},
        "groups": ["g1"],
    }


@pytest.mark.asyncio
async def test_server_errors_become_downstream_failure_after_retry():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503, json={"message": "maintenance"})

    with pytest.raises(DownstreamSideEffectFailure) as exc:
        await _mailerlite(handler, timeout=1.0).find_by_subject_id("a@x.com")
    assert exc.value.details["operation"] == "find_subscriber"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_upsert_is_not_retried_on_server_error():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500, json={"message": "boom"})

    with pytest.raises(DownstreamSideEffectFailure):
        await _mailerlite(handler).upsert(SubscriberRecord(email="a@x.com", group_id="g1"))
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_missing_api_key_is_configuration_error():
    client = MailerLiteClient(DirectorySettings(api_key=None))
    with pytest.raises(ConfigurationError):
        await client.find_by_subject_id("a@x.com")


@pytest.mark.asyncio
async def test_telegram_sink_posts_send_message():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True})

    cfg = AlertSettings(telegram_bot_token="123:abc", telegram_chat_id="-100", base_url="https://tg.test")
    sink = TelegramAlertSink(cfg, transport=httpx.MockTransport(handler))
    await sink.send("hello")
    await sink.aclose()

    assert seen == {"path": "/bot123:abc/sendMessage", "body": {"chat_id": "-100", "text": "hello"}}


def test_alert_sink_factory_falls_back_to_log():
    assert isinstance(get_alert_sink(AlertSettings()), LoggingAlertSink)
    assert isinstance(get_alert_sink(AlertSettings(telegram_bot_token="t", telegram_chat_id="c")), TelegramAlertSink)


@pytest.mark.asyncio
async def test_rate_limited_post_fails_without_waiting():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(429, headers={"Retry-After": "30"}, json={"ok": False})

    cfg = AlertSettings(telegram_bot_token="123:abc", telegram_chat_id="-100", base_url="https://tg.test", timeout=5.0)
    sink = TelegramAlertSink(cfg, transport=httpx.MockTransport(handler))
    started = time.monotonic()
    with pytest.raises(APIError):
        await sink.send("hello")
    await sink.aclose()

    assert len(calls) == 1
    assert time.monotonic() - started < 1.0


@pytest.mark.asyncio
async def test_rate_limited_get_retries_after_delay():
    responses = iter([
        httpx.Response(429, headers={"Retry-After": "0.05"}, json={"message": "slow down"}),
        httpx.Response(200, json={"data": {"id": "123", "groups": []}}),
    ])
    entry = await _mailerlite(lambda request: next(responses)).find_by_subject_id("a@x.com")
    assert entry.id == "123"
