# tests/test_notifications.py
# Fan-out semantics and the webhook chat transport (httpx.MockTransport).

import asyncio
import json

import httpx
import pytest

from incident_desk.core import RepositoryException, TransportException
from incident_desk.incidents.application import IChatTransport, NotificationFanout
from incident_desk.incidents.domain import Delivery
from incident_desk.incidents.infrastructure import (
    CircuitBreaker,
    CircuitState,
    ReminderScheduler,
    WebhookChatTransport,
)

from tests.conftest import FakeTransport

WEBHOOK = "https://gateway.test/send"


# ========== Fan-out ==========

@pytest.mark.asyncio
async def test_broadcast_dedupes_and_skips_empty_channels():
    transport = FakeTransport()
    fanout = NotificationFanout(transport)

    outcomes = await fanout.broadcast([
        Delivery("it@g.us", "hola"),
        Delivery("it@g.us", "hola"),
        Delivery("it@g.us", "adios"),
        Delivery("", "nadie"),
    ])

    assert [(o.channel_id, o.delivered) for o in outcomes] == [("it@g.us", True), ("it@g.us", True)]
    assert transport.texts_to("it@g.us") == ["hola", "adios"]


@pytest.mark.asyncio
async def test_broadcast_isolates_failures():
    transport = FakeTransport(failing={"man@g.us"})
    fanout = NotificationFanout(transport)

    outcomes = await fanout.broadcast([
        Delivery("it@g.us", "a"),
        Delivery("man@g.us", "b"),
        Delivery("seg@g.us", "c"),
    ])

    assert [o.delivered for o in outcomes] == [True, False, True]
    assert "gateway unavailable" in outcomes[1].error
    assert [d.channel_id for d in transport.sent] == ["it@g.us", "seg@g.us"]


@pytest.mark.asyncio
async def test_broadcast_respects_concurrency_bound():
    class SlowTransport(IChatTransport):
        def __init__(self):
            self.active = 0
            self.peak = 0

        async def deliver(self, channel_id, text, media=None):
            self.active += 1
            self.peak = max(self.peak, self.active)
            await asyncio.sleep(0.01)
            self.active -= 1

    transport = SlowTransport()
    fanout = NotificationFanout(transport, concurrency=2)

    outcomes = await fanout.broadcast([Delivery(f"c{i}@g.us", "x") for i in range(6)])

    assert len(outcomes) == 6
    assert transport.peak == 2


@pytest.mark.asyncio
async def test_broadcast_of_nothing():
    assert await NotificationFanout(FakeTransport()).broadcast([]) == []


# ========== Circuit breaker ==========

def test_circuit_breaker_opens_and_recovers():
    now = [0.0]
    breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=30, clock=lambda: now[0])

    breaker.record_failure()
    assert breaker.allow_request()
    breaker.record_failure()
    assert breaker.state == CircuitState.OPEN
    assert not breaker.allow_request()

    now[0] = 31.0
    assert breaker.state == CircuitState.HALF_OPEN
    breaker.record_success()
    assert breaker.state == CircuitState.CLOSED


# ========== Webhook transport ==========

@pytest.mark.asyncio
async def test_webhook_posts_payload():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    transport = WebhookChatTransport(WEBHOOK, client=client)

    await transport.deliver("it@g.us", "Nueva tarea (ID: 1)", media="media://1")
    await transport.close()

    assert requests == [{"channel_id": "it@g.us", "text": "Nueva tarea (ID: 1)", "media": "media://1"}]


@pytest.mark.asyncio
async def test_webhook_retries_then_raises():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(502)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    transport = WebhookChatTransport(WEBHOOK, max_retries=3, backoff_base=0, client=client)

    with pytest.raises(TransportException) as exc_info:
        await transport.deliver("it@g.us", "hola")

    assert len(calls) == 3
    assert exc_info.value.channel_id == "it@g.us"
    assert "502" in exc_info.value.message
    await transport.close()


@pytest.mark.asyncio
async def test_webhook_recovers_after_transient_error():
    attempts = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["n"] += 1
        if attempts["n"] == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(204)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    transport = WebhookChatTransport(WEBHOOK, max_retries=3, backoff_base=0, client=client)

    await transport.deliver("it@g.us", "hola")

    assert attempts["n"] == 2
    await transport.close()


@pytest.mark.asyncio
async def test_open_circuit_rejects_without_calling_gateway():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500)

    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    transport = WebhookChatTransport(WEBHOOK, max_retries=1, backoff_base=0, circuit_breaker=breaker, client=client)

    with pytest.raises(TransportException):
        await transport.deliver("it@g.us", "uno")
    with pytest.raises(TransportException) as exc_info:
        await transport.deliver("it@g.us", "dos")

    assert len(calls) == 1
    assert "circuit breaker open" in exc_info.value.message
    await transport.close()


@pytest.mark.asyncio
async def test_unconfigured_webhook_drops_silently():
    transport = WebhookChatTransport(None)
    await transport.deliver("it@g.us", "hola")


# ========== Reminder scheduler ==========

@pytest.mark.asyncio
async def test_reminder_scheduler_lifecycle():
    class CountingReminders:
        def __init__(self):
            self.runs = 0

        async def send_reminders(self):
            self.runs += 1
            return 2

    reminders = CountingReminders()
    scheduler = ReminderScheduler(reminders, interval_seconds=3600)
    assert not scheduler.is_running

    await scheduler.start()
    await scheduler.start()
    assert scheduler.is_running

    assert await scheduler.run_once() == 2
    assert reminders.runs == 1

    await scheduler.stop()
    assert not scheduler.is_running


@pytest.mark.asyncio
async def test_failed_reminder_sweep_is_contained():
    class BrokenReminders:
        async def send_reminders(self):
            raise RepositoryException("database unavailable")

    scheduler = ReminderScheduler(BrokenReminders(), interval_seconds=3600)

    assert await scheduler.run_once() == 0
