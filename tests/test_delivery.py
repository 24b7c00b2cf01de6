"""Tests for the webhook delivery engine."""

import asyncio
import json
import threading

import httpx
import pytest

from smsrelay.config import DeliveryConfig
from smsrelay.core.config_store import ConfigStore
from smsrelay.core.delivery import DeliveryEngine
from smsrelay.core.signature import compute_signature
from smsrelay.models import IncomingEvent

HOOK = "https://example.test/hook"


def make_event(body="OTP 482913", ts=1700000000000):
    return IncomingEvent(sender="+15551234567", body=body, received_at_millis=ts)


class Recorder:
    """Mock endpoint: records requests and answers with a fixed status."""

    def __init__(self, status: int = 200) -> None:
        self.status = status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, text="ok")

    def bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def store():
    s = ConfigStore()
    s.set(HOOK, "s3cret")
    return s


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
async def engine(store, recorder):
    eng = DeliveryEngine(store, DeliveryConfig(), transport=httpx.MockTransport(recorder))
    await eng.start()
    yield eng
    await eng.stop()


class TestDispatch:
    async def test_success_scenario(self, engine, recorder):
        engine.submit(make_event())
        await engine.drain()

        assert engine.delivered_count == 1
        assert engine.failed_count == 0
        assert len(recorder.requests) == 1

        body = recorder.bodies()[0]
        assert body["message"] == "OTP 482913"
        assert body["sender"] == "+15551234567"
        assert body["timestamp"] == 1700000000000
        assert len(body["signature"]) >= 32
        int(body["signature"], 16)

    async def test_request_shape(self, engine, recorder):
        event = make_event()
        engine.submit(event)
        await engine.drain()

        request = recorder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == HOOK
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["X-SMS-ID"] == "1700000000000"
        assert request.headers["User-Agent"] == "smsrelay/0.1.0"
        expected = compute_signature(event, "s3cret")
        assert request.headers["X-SMS-Signature"] == expected
        assert recorder.bodies()[0]["signature"] == expected

    async def test_server_error_counts_failure_without_retry(self, engine, recorder):
        recorder.status = 500
        engine.submit(make_event())
        await engine.drain()

        assert engine.failed_count == 1
        assert engine.delivered_count == 0
        assert len(recorder.requests) == 1

        outcome = engine.recent_outcomes()[0]
        assert outcome.succeeded is False
        assert outcome.http_status == 500

    async def test_redirect_status_is_failure(self, engine, recorder):
        recorder.status = 302
        engine.submit(make_event())
        await engine.drain()
        assert engine.failed_count == 1

    async def test_empty_url_skips_delivery(self, engine, store, recorder):
        store.set("", "s3cret")
        engine.submit(make_event())
        await engine.drain()

        assert engine.delivered_count == 0
        assert engine.failed_count == 0
        assert recorder.requests == []
        assert engine.recent_outcomes() == []

    async def test_transport_error_counts_failure(self, store):
        def boom(request):
            raise httpx.ConnectError("connection refused", request=request)

        eng = DeliveryEngine(store, transport=httpx.MockTransport(boom))
        await eng.start()
        eng.submit(make_event())
        await eng.drain()
        await eng.stop()

        assert eng.failed_count == 1
        outcome = eng.recent_outcomes()[0]
        assert outcome.http_status is None
        assert "connection refused" in outcome.error

    async def test_unexpected_error_still_counted(self, store):
        def broken(request):
            raise RuntimeError("handler bug")

        eng = DeliveryEngine(store, transport=httpx.MockTransport(broken))
        await eng.start()
        eng.submit(make_event())
        await eng.drain()
        await eng.stop()

        assert eng.failed_count == 1

    async def test_counts_match_submissions(self, store):
        statuses = iter([200, 500, 201, 404, 204])

        def mixed(request):
            return httpx.Response(next(statuses))

        eng = DeliveryEngine(store, transport=httpx.MockTransport(mixed))
        await eng.start()
        for i in range(5):
            eng.submit(make_event(ts=i))
        await eng.drain()
        await eng.stop()

        assert eng.delivered_count == 3
        assert eng.failed_count == 2
        assert eng.delivered_count + eng.failed_count == 5


class TestConfigChanges:
    async def test_secret_change_affects_later_events_only(self, engine, store, recorder):
        event = make_event()
        engine.submit(event)
        await engine.drain()

        store.set(HOOK, "rotated")
        engine.submit(event)
        await engine.drain()

        first, second = recorder.bodies()
        assert first["signature"] == compute_signature(event, "s3cret")
        assert second["signature"] == compute_signature(event, "rotated")

    async def test_legacy_scheme(self, store, recorder):
        eng = DeliveryEngine(
            store,
            DeliveryConfig(signature_scheme="legacy"),
            transport=httpx.MockTransport(recorder),
        )
        await eng.start()
        event = make_event()
        eng.submit(event)
        await eng.drain()
        await eng.stop()

        assert recorder.bodies()[0]["signature"] == compute_signature(event, "s3cret", "legacy")


class TestConcurrency:
    async def test_pool_bounds_in_flight_requests(self, store):
        in_flight = 0
        peak = 0

        class SlowTransport(httpx.AsyncBaseTransport):
            async def handle_async_request(self, request):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.02)
                in_flight -= 1
                return httpx.Response(200)

        eng = DeliveryEngine(store, DeliveryConfig(workers=3), transport=SlowTransport())
        await eng.start()
        for i in range(10):
            eng.submit(make_event(ts=i))
        await eng.drain()
        await eng.stop()

        assert peak == 3
        assert eng.delivered_count == 10

    async def test_submit_from_other_thread(self, engine, recorder):
        threads = [
            threading.Thread(target=engine.submit, args=(make_event(ts=i),))
            for i in range(4)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        # Let the threadsafe callbacks land on the loop
        await asyncio.sleep(0.05)
        await engine.drain()

        assert engine.delivered_count == 4


class TestLifecycle:
    async def test_submit_when_stopped_is_dropped(self, store, recorder):
        eng = DeliveryEngine(store, transport=httpx.MockTransport(recorder))
        eng.submit(make_event())
        assert eng.pending == 0
        assert recorder.requests == []

    async def test_stop_waits_for_queued_work(self, store, recorder):
        eng = DeliveryEngine(store, transport=httpx.MockTransport(recorder))
        await eng.start()
        for i in range(5):
            eng.submit(make_event(ts=i))
        await eng.stop()

        assert eng.delivered_count == 5
        assert eng.running is False

    async def test_off_loop_submit_landing_after_stop_is_dropped(self, store, recorder):
        eng = DeliveryEngine(store, transport=httpx.MockTransport(recorder))
        await eng.start()

        # The callback is scheduled but cannot run until the loop yields
        t = threading.Thread(target=eng.submit, args=(make_event(),))
        t.start()
        t.join()
        await eng.stop()

        assert eng.pending == 0
        assert recorder.requests == []
        assert eng.delivered_count == eng.failed_count == 0

    async def test_restart_keeps_counters(self, store, recorder):
        eng = DeliveryEngine(store, transport=httpx.MockTransport(recorder))
        await eng.start()
        eng.submit(make_event())
        await eng.stop()
        await eng.start()
        eng.submit(make_event())
        await eng.stop()

        assert eng.delivered_count == 2

    async def test_outcome_callback(self, store, recorder):
        outcomes = []
        eng = DeliveryEngine(
            store, transport=httpx.MockTransport(recorder), on_outcome=outcomes.append
        )
        await eng.start()
        eng.submit(make_event())
        await eng.stop()

        assert len(outcomes) == 1
        assert outcomes[0].succeeded is True
        assert outcomes[0].event_id == "1700000000000"

    async def test_callback_error_does_not_break_counting(self, store, recorder):
        def bad(outcome):
            raise RuntimeError("sink down")

        eng = DeliveryEngine(store, transport=httpx.MockTransport(recorder), on_outcome=bad)
        await eng.start()
        eng.submit(make_event())
        eng.submit(make_event(ts=2))
        await eng.stop()

        assert eng.delivered_count == 2

    async def test_recent_outcomes_bounded(self, store, recorder):
        eng = DeliveryEngine(
            store, DeliveryConfig(recent_limit=2), transport=httpx.MockTransport(recorder)
        )
        await eng.start()
        for i in range(4):
            eng.submit(make_event(ts=i))
        await eng.stop()

        assert len(eng.recent_outcomes()) == 2
        assert eng.delivered_count == 4


class TestDeliver:
    async def test_deliver_does_not_touch_counters(self, store, recorder):
        eng = DeliveryEngine(store, transport=httpx.MockTransport(recorder))
        outcome = await eng.deliver(make_event())

        assert outcome.succeeded is True
        assert outcome.http_status == 200
        assert eng.delivered_count == 0
        assert len(recorder.requests) == 1
