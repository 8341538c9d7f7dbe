"""Hand-written fakes for the application ports and payload builders."""
import json
from typing import Any, Optional

from application.ports.directory import DirectoryEntry, SubscriberRecord
from application.ports.payment_gateway import RawGatewayResponse
from core.settings import (
    AlertSettings,
    CallbackSettings,
    DirectorySettings,
    MpesaSettings,
    PaymentSettings,
)


class StubTransport:
    """GatewayTransport fake recording calls; answers with a canned response."""

    provider = "mpesa"

    def __init__(self, response: Optional[RawGatewayResponse] = None, *, error: Optional[Exception] = None):
        self.response = response or accepted_response("ws_CO_1")
        self.error = error
        self.auth_calls: list[tuple[str, str]] = []
        self.submissions: list[tuple[str, dict]] = []

    async def authenticate(self, key: str, secret: str) -> str:
        self.auth_calls.append((key, secret))
        return "access-token"

    async def submit(self, credential: str, payload: dict[str, Any]) -> RawGatewayResponse:
        self.submissions.append((credential, payload))
        if self.error is not None:
            raise self.error
        return self.response

    async def aclose(self) -> None:
        return None


class FakeDirectory:
    """DirectoryPort fake keeping memberships and an ordered call log."""

    def __init__(self, entries: Optional[dict[str, DirectoryEntry]] = None, *, fail_with: Optional[Exception] = None):
        self.entries = dict(entries or {})
        self.calls: list[tuple] = []
        self.fail_with = fail_with

    async def find_by_subject_id(self, subject_id: str) -> Optional[DirectoryEntry]:
        self.calls.append(("find", subject_id))
        if self.fail_with is not None:
            raise self.fail_with
        return self.entries.get(subject_id)

    async def remove_from_group(self, entry_id: str, group_id: str) -> None:
        self.calls.append(("remove", entry_id, group_id))
        for entry in self.entries.values():
            if entry.id == entry_id and group_id in entry.groups:
                entry.groups.remove(group_id)

    async def upsert(self, record: SubscriberRecord) -> None:
        self.calls.append(("upsert", record))
        entry = self.entries.setdefault(record.email, DirectoryEntry(id=f"sub-{len(self.entries) + 1}"))
        if record.group_id not in entry.groups:
            entry.groups.append(record.group_id)

    @property
    def upserts(self) -> list[SubscriberRecord]:
        return [c[1] for c in self.calls if c[0] == "upsert"]


class RecordingAlertSink:
    def __init__(self, *, fail: bool = False):
        self.messages: list[str] = []
        self.fail = fail

    async def send(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("sink down")
        self.messages.append(text)


def accepted_response(checkout_id: Optional[str], merchant_id: str = "29115-34620561-1") -> RawGatewayResponse:
    body: dict[str, Any] = {
        "MerchantRequestID": merchant_id,
        "ResponseCode": "0",
        "ResponseDescription": "Success. Request accepted for processing",
        "CustomerMessage": "Success. Request accepted for processing",
    }
    if checkout_id:
        body["CheckoutRequestID"] = checkout_id
    return RawGatewayResponse(status_code=200, body=json.dumps(body).encode())


def stk_callback(checkout_id: str, result_code: int = 0, items: Optional[list[dict]] = None) -> dict:
    cb: dict[str, Any] = {
        "MerchantRequestID": "29115-34620561-1",
        "CheckoutRequestID": checkout_id,
        "ResultCode": result_code,
        "ResultDesc": "The service request is processed successfully." if result_code == 0 else "Request cancelled by user",
    }
    if items is not None:
        cb["CallbackMetadata"] = {"Item": items}
    return {"Body": {"stkCallback": cb}}


def make_settings(**callback: Any) -> PaymentSettings:
    return PaymentSettings(
        mpesa=MpesaSettings(
            consumer_key="key",
            consumer_secret="secret",
            shortcode="174379",
            passkey="passkey",
            callback_url="https://example.test/api/v1/payments/callback",
        ),
        callback=CallbackSettings(**callback),
        directory=DirectorySettings(
            api_key="ml-key",
            default_group="default-group",
            group_map={"Retail": "retail-group", "real estate": "estate-group"},
        ),
        alerts=AlertSettings(),
    )

