"""In-process source for development and tests."""

from __future__ import annotations

from smsrelay.models import IncomingEvent, now_millis
from smsrelay.sources.base import EventHandler, MessageSource
from smsrelay.utils.logging import get_logger

log = get_logger(__name__)


class SimulatedMessageSource(MessageSource):
    @property
    def source_name(self) -> str:
        return "simulated"

    async def start(self, handler: EventHandler) -> None:
        if self._handler is not None:
            log.debug("simulated_source_already_active")
            return
        self._handler = handler
        log.info("simulated_source_started")

    async def stop(self) -> None:
        self._handler = None
        log.info("simulated_source_stopped")

    def inject(
        self, sender: str, body: str, received_at_millis: int | None = None
    ) -> bool:
        """Feed a message as if it had just arrived. Returns False while inactive."""
        handler = self._handler
        if handler is None:
            log.debug("simulated_source_inactive", sender=sender)
            return False
        event = IncomingEvent(
            sender=sender,
            body=body,
            received_at_millis=received_at_millis if received_at_millis is not None else now_millis(),
        )
        handler(event)
        return True
