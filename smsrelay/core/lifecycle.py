"""Monitoring lifecycle: the Idle/Listening state machine."""

from __future__ import annotations

import asyncio

import httpx

from smsrelay.adapters.permissions import PermissionGate
from smsrelay.config import DeliveryConfig, WebhookConfig
from smsrelay.core.config_store import ConfigStore
from smsrelay.core.delivery import DeliveryEngine
from smsrelay.core.status import StatusReporter
from smsrelay.models import DeliveryOutcome, IncomingEvent, ServiceState, ServiceStatus
from smsrelay.sources.base import MessageSource
from smsrelay.utils.logging import get_logger

log = get_logger(__name__)


class SmsRelayError(Exception):
    """Base class for errors surfaced to command callers."""


class PermissionDeniedError(SmsRelayError):
    pass


class LifecycleController:
    """Owns the config store and delivery engine; gates the message source.

    State is held in memory only. A restarted process starts Idle.
    """

    def __init__(
        self,
        source: MessageSource,
        permissions: PermissionGate,
        *,
        delivery_config: DeliveryConfig | None = None,
        reporter: StatusReporter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._source = source
        self._permissions = permissions
        self._reporter = reporter
        self._store = ConfigStore()
        self._engine = DeliveryEngine(
            self._store,
            delivery_config,
            on_outcome=self._on_outcome,
            transport=transport,
        )
        self._state = ServiceState.IDLE
        self._transition_lock = asyncio.Lock()

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def config_store(self) -> ConfigStore:
        return self._store

    @property
    def engine(self) -> DeliveryEngine:
        return self._engine

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def start(self, config: WebhookConfig) -> None:
        async with self._transition_lock:
            if self._state is ServiceState.LISTENING:
                log.debug("monitoring_already_active")
                return

            if not self._permissions.has_permission():
                granted = await self._permissions.request_permission()
                if not granted:
                    log.warning("monitoring_permission_denied")
                    raise PermissionDeniedError("SMS permissions not granted")

            self._store.update(config)
            await self._engine.start()

            # Registration failure leaves us Listening without a feed
            try:
                await self._source.start(self.receive)
            except Exception:
                log.exception("source_start_failed", source=self._source.source_name)

            self._state = ServiceState.LISTENING
            log.info(
                "monitoring_started",
                source=self._source.source_name,
                endpoint_url=config.endpoint_url,
            )
            self._publish()

    async def stop(self) -> None:
        """Unregister the source and go Idle.

        Queued and in-flight deliveries keep running on the engine and are
        still counted when they finish.
        """
        async with self._transition_lock:
            await self._stop_listening()

    async def close(self) -> None:
        """Stop monitoring and drain the delivery engine. Used at shutdown."""
        async with self._transition_lock:
            await self._stop_listening()
            await self._engine.stop()

    async def _stop_listening(self) -> None:
        if self._state is ServiceState.IDLE:
            log.debug("monitoring_already_stopped")
            return

        try:
            await self._source.stop()
        except Exception:
            log.exception("source_stop_failed", source=self._source.source_name)

        self._state = ServiceState.IDLE
        log.info("monitoring_stopped", pending=self._engine.pending)
        self._publish()

    def update_config(self, endpoint_url: str, shared_secret: str) -> WebhookConfig:
        return self._store.set(endpoint_url, shared_secret)

    def status(self) -> ServiceStatus:
        return ServiceStatus(
            state=self._state,
            delivered_count=self._engine.delivered_count,
            failed_count=self._engine.failed_count,
            pending=self._engine.pending,
        )

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def receive(self, event: IncomingEvent) -> None:
        """Message source callback. Events arriving while Idle are dropped."""
        if self._state is not ServiceState.LISTENING:
            log.debug("event_dropped_idle", event_id=event.event_id)
            return
        self._engine.submit(event)

    def _on_outcome(self, outcome: DeliveryOutcome) -> None:
        if outcome.succeeded:
            self._publish()

    def _publish(self) -> None:
        if self._reporter is not None:
            self._reporter.publish(self._state, self._engine.delivered_count)
