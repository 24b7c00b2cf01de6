"""Human-readable status text for the presentation sink."""

from __future__ import annotations

from smsrelay.adapters.presentation import StatusSink
from smsrelay.models import ServiceState
from smsrelay.utils.logging import get_logger

log = get_logger(__name__)


def render_status(state: ServiceState | None, delivered_count: int | None) -> str:
    count = delivered_count if delivered_count and delivered_count > 0 else 0
    if state is ServiceState.LISTENING:
        return f"{count} forwarded"
    return f"Stopped, {count} forwarded"


class StatusReporter:
    def __init__(self, sink: StatusSink) -> None:
        self._sink = sink

    def publish(self, state: ServiceState | None, delivered_count: int | None) -> str:
        text = render_status(state, delivered_count)
        try:
            self._sink.set_status(text)
        except Exception:
            log.exception("status_sink_error")
        return text
