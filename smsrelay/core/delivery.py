"""Asynchronous webhook delivery with a bounded worker pool."""

from __future__ import annotations

import asyncio
import threading
from collections import deque
from typing import Any, Callable

import httpx

from smsrelay.config import DeliveryConfig, WebhookConfig
from smsrelay.core.config_store import ConfigStore
from smsrelay.core.signature import compute_signature
from smsrelay.models import DeliveryOutcome, IncomingEvent
from smsrelay.utils.logging import get_logger

log = get_logger(__name__)

OutcomeCallback = Callable[[DeliveryOutcome], None]


class DeliveryEngine:
    """Signs incoming events and POSTs them to the configured webhook.

    ``submit`` only enqueues; ``workers`` tasks drain the queue and perform
    all network I/O. Every dispatched event with a configured endpoint ends
    in exactly one recorded outcome. Failures are terminal (no retry).
    """

    def __init__(
        self,
        store: ConfigStore,
        config: DeliveryConfig | None = None,
        *,
        on_outcome: OutcomeCallback | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._store = store
        self._config = config or DeliveryConfig()
        self.on_outcome = on_outcome
        self._transport = transport

        self._queue: asyncio.Queue[IncomingEvent] = asyncio.Queue()
        self._workers: list[asyncio.Task[None]] = []
        self._client: httpx.AsyncClient | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._accepting = False

        self._lock = threading.Lock()
        self._delivered = 0
        self._failed = 0
        self._recent: deque[DeliveryOutcome] = deque(maxlen=self._config.recent_limit)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._accepting

    async def start(self) -> None:
        if self._accepting:
            return
        self._loop = asyncio.get_running_loop()
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                self._config.read_timeout, connect=self._config.connect_timeout
            ),
            transport=self._transport,
        )
        for i in range(self._config.workers):
            self._workers.append(
                asyncio.create_task(self._worker(), name=f"delivery-worker-{i}")
            )
        self._accepting = True
        log.info("delivery_engine_started", workers=self._config.workers)

    async def stop(self) -> None:
        """Stop accepting events, let queued and in-flight work finish, release the client."""
        if not self._accepting and not self._workers:
            return
        self._accepting = False
        await self._queue.join()
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._loop = None
        log.info("delivery_engine_stopped")

    async def drain(self) -> None:
        """Wait until every submitted event has been dispatched."""
        await self._queue.join()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, event: IncomingEvent) -> None:
        """Queue *event* for delivery. Never blocks and never raises."""
        try:
            loop = self._loop
            if not self._accepting or loop is None or loop.is_closed():
                log.warning("delivery_engine_not_running", event_id=event.event_id)
                return
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is loop:
                self._queue.put_nowait(event)
            else:
                loop.call_soon_threadsafe(self._enqueue, event)
            log.debug("delivery_queued", event_id=event.event_id, sender=event.sender)
        except Exception:
            log.exception("delivery_submit_error")

    def _enqueue(self, event: IncomingEvent) -> None:
        # stop() may have begun between the thread hop and this callback
        if not self._accepting:
            log.warning("delivery_engine_not_running", event_id=event.event_id)
            return
        self._queue.put_nowait(event)

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------

    @property
    def delivered_count(self) -> int:
        with self._lock:
            return self._delivered

    @property
    def failed_count(self) -> int:
        with self._lock:
            return self._failed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def recent_outcomes(self) -> list[DeliveryOutcome]:
        with self._lock:
            return list(self._recent)

    def _record(self, outcome: DeliveryOutcome) -> None:
        with self._lock:
            if outcome.succeeded:
                self._delivered += 1
            else:
                self._failed += 1
            self._recent.append(outcome)

        if self.on_outcome is not None:
            try:
                self.on_outcome(outcome)
            except Exception:
                log.exception("outcome_callback_error")

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _worker(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._dispatch(event)
            finally:
                self._queue.task_done()

    async def _dispatch(self, event: IncomingEvent) -> None:
        config = self._store.get()
        if not config.endpoint_url:
            log.warning("no_webhook_configured", event_id=event.event_id)
            return

        try:
            outcome = await self.deliver(event, config)
        except Exception as exc:
            log.exception("webhook_dispatch_error", event_id=event.event_id)
            outcome = DeliveryOutcome(
                succeeded=False,
                error=str(exc) or type(exc).__name__,
                event_id=event.event_id,
                sender=event.sender,
            )
        self._record(outcome)

    def build_request(
        self, event: IncomingEvent, secret: str
    ) -> tuple[dict[str, Any], dict[str, str]]:
        signature = compute_signature(event, secret, self._config.signature_scheme)
        payload = {
            "message": event.body,
            "sender": event.sender,
            "timestamp": event.received_at_millis,
            "signature": signature,
        }
        headers = {
            "Content-Type": "application/json",
            "X-SMS-Signature": signature,
            "X-SMS-ID": event.event_id,
            "User-Agent": self._config.user_agent,
        }
        return payload, headers

    async def deliver(
        self, event: IncomingEvent, config: WebhookConfig | None = None
    ) -> DeliveryOutcome:
        """POST one event and return its outcome. Counters are not touched."""
        config = config or self._store.get()
        payload, headers = self.build_request(event, config.shared_secret)

        client = self._client
        owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    self._config.read_timeout, connect=self._config.connect_timeout
                ),
                transport=self._transport,
            )

        try:
            resp = await client.post(config.endpoint_url, json=payload, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            log.error(
                "webhook_delivery_error",
                event_id=event.event_id,
                error=str(exc) or type(exc).__name__,
            )
            return DeliveryOutcome(
                succeeded=False,
                error=str(exc) or type(exc).__name__,
                event_id=event.event_id,
                sender=event.sender,
            )
        finally:
            if owns_client:
                await client.aclose()

        if resp.is_success:
            log.info("webhook_delivered", event_id=event.event_id, status=resp.status_code)
            return DeliveryOutcome(
                succeeded=True,
                http_status=resp.status_code,
                event_id=event.event_id,
                sender=event.sender,
            )

        log.error(
            "webhook_delivery_failed",
            event_id=event.event_id,
            status=resp.status_code,
            body=resp.text[:200],
        )
        return DeliveryOutcome(
            succeeded=False,
            http_status=resp.status_code,
            error=f"HTTP {resp.status_code}",
            event_id=event.event_id,
            sender=event.sender,
        )
