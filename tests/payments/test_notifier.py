import asyncio

import pytest

from application.services.notification_service import AlertNotifier
from tests.fakes import RecordingAlertSink


@pytest.mark.asyncio
async def test_notify_delivers_in_order(alert_sink):
    notifier = AlertNotifier(alert_sink)
    notifier.notify("one")
    notifier.notify("two")
    await notifier.flush()
    assert alert_sink.messages == ["one", "two"]
    await notifier.aclose()


@pytest.mark.asyncio
async def test_sink_failure_is_swallowed():
    notifier = AlertNotifier(RecordingAlertSink(fail=True))
    notifier.notify("boom")
    await notifier.flush()
    await notifier.aclose()


@pytest.mark.asyncio
async def test_slow_sink_does_not_block_notify_and_times_out():
    class _Slow:
        def __init__(self):
            self.started = 0

        async def send(self, text):
            self.started += 1
            await asyncio.sleep(10)

    sink = _Slow()
    notifier = AlertNotifier(sink, send_timeout=0.05)
    notifier.notify("a")
    notifier.notify("b")
    await asyncio.wait_for(notifier.flush(), timeout=2)
    assert sink.started == 2
    await notifier.aclose()


@pytest.mark.asyncio
async def test_overflow_drops_new_messages(alert_sink):
    notifier = AlertNotifier(alert_sink, queue_max=2)
    for i in range(5):
        notifier.notify(str(i))
    await notifier.flush()
    assert alert_sink.messages == ["0", "1"]
    await notifier.aclose()


@pytest.mark.asyncio
async def test_notify_after_close_is_dropped(alert_sink):
    notifier = AlertNotifier(alert_sink)
    await notifier.aclose()
    notifier.notify("late")
    await notifier.flush()
    assert alert_sink.messages == []


def test_notify_without_running_loop_never_raises(alert_sink):
    AlertNotifier(alert_sink).notify("no loop")
