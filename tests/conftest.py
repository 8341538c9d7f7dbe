"""Pytest bootstrap configuration.

Environment defaults are set before application settings are imported so
tests never pick up real gateway credentials from a developer's .env.
"""
import os

os.environ.setdefault("MPESA__CONSUMER_KEY", "test-key")
os.environ.setdefault("MPESA__CONSUMER_SECRET", "test-secret")
os.environ.setdefault("MPESA__SHORTCODE", "174379")
os.environ.setdefault("MPESA__PASSKEY", "test-passkey")
os.environ.setdefault("MPESA__CALLBACK_URL", "https://example.test/api/v1/payments/callback")

import pytest

from domain.payment.entity import Subject
from tests.fakes import FakeDirectory, RecordingAlertSink, StubTransport


@pytest.fixture
def subject() -> Subject:
    return Subject(name="A", email="a@x.com", phone="254712345678", category="retail")


@pytest.fixture
def transport() -> StubTransport:
    return StubTransport()


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def alert_sink() -> RecordingAlertSink:
    return RecordingAlertSink()
