"""SMS gateway push source using aiohttp.

Gateways POST one message per request as JSON. Accepted field names follow
the common gateway variants: ``from``/``sender``/``address`` for the
originating number and ``body``/``message`` for the text. ``timestamp`` is
epoch milliseconds and defaults to the time of receipt.
"""

from __future__ import annotations

import hmac
from typing import Any

from aiohttp import web

from smsrelay.config import SourceConfig
from smsrelay.models import IncomingEvent, now_millis
from smsrelay.sources.base import EventHandler, MessageSource
from smsrelay.utils.logging import get_logger

log = get_logger(__name__)


def parse_gateway_payload(payload: dict[str, Any]) -> IncomingEvent | None:
    """Decode a gateway JSON object. Returns None if there is no sender."""
    sender = payload.get("from") or payload.get("sender") or payload.get("address")
    if not sender:
        return None
    body = payload.get("body", payload.get("message", "")) or ""

    timestamp = payload.get("timestamp")
    received_at = now_millis()
    if timestamp is not None and not isinstance(timestamp, bool):
        try:
            received_at = int(timestamp)
        except (TypeError, ValueError, OverflowError):
            log.debug("gateway_timestamp_invalid", timestamp=repr(timestamp))

    return IncomingEvent(sender=str(sender), body=str(body), received_at_millis=received_at)


class HttpMessageSource(MessageSource):
    """Receives SMS pushed by a gateway while monitoring is active."""

    def __init__(self, config: SourceConfig) -> None:
        super().__init__()
        self._config = config
        self._runner: web.AppRunner | None = None

    @property
    def source_name(self) -> str:
        return "http"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, handler: EventHandler) -> None:
        if self._runner is not None:
            log.debug("http_source_already_active")
            return
        if not self._config.token:
            log.warning(
                "http_source_no_token",
                msg="Gateway endpoint has no token configured; any client can inject messages.",
            )
        self._handler = handler
        app = self._build_app()
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, self._config.bind, self._config.port)
        try:
            await site.start()
        except Exception:
            self._handler = None
            await runner.cleanup()
            raise
        self._runner = runner
        log.info(
            "http_source_started",
            bind=self._config.bind,
            port=self._config.port,
            path=self._path,
        )

    async def stop(self) -> None:
        self._handler = None
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        log.info("http_source_stopped")

    # ------------------------------------------------------------------
    # App construction
    # ------------------------------------------------------------------

    @property
    def _path(self) -> str:
        path = self._config.path
        return path if path.startswith("/") else f"/{path}"

    def _build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post(self._path, self._handle_sms)
        return app

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    async def _handle_sms(self, request: web.Request) -> web.Response:
        handler = self._handler
        if handler is None:
            return web.Response(status=503, text="Not monitoring")

        if self._config.token:
            provided = request.headers.get("X-Gateway-Token", "")
            if not provided or not hmac.compare_digest(provided, self._config.token):
                return web.Response(status=401, text="Invalid token")

        try:
            payload = await request.json()
        except Exception:
            return web.Response(status=400, text="Invalid JSON")
        if not isinstance(payload, dict):
            return web.Response(status=400, text="Expected a JSON object")

        event = parse_gateway_payload(payload)
        if event is None:
            return web.Response(status=400, text="Missing sender")

        log.info("sms_received", sender=event.sender, body_length=len(event.body))
        handler(event)
        return web.Response(status=202, text="Accepted")
