"""Control API using aiohttp, bridging HTTP requests to the command surface."""

from __future__ import annotations

import hmac
from typing import Any

from aiohttp import web

from smsrelay.config import ControlConfig
from smsrelay.core.commands import CommandSurface, InvalidArgumentError
from smsrelay.core.lifecycle import PermissionDeniedError
from smsrelay.utils.logging import get_logger

log = get_logger(__name__)


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"success": False, "error": message}, status=status)


class ControlServer:
    """Exposes start/stop/status/config and the test helpers over HTTP."""

    def __init__(self, config: ControlConfig, commands: CommandSurface) -> None:
        self._config = config
        self._commands = commands
        self._runner: web.AppRunner | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if not self._config.token:
            log.warning(
                "control_api_no_token",
                msg="Control API has no token configured; bind it to localhost only.",
            )
        app = self._build_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.bind, self._config.port)
        await site.start()
        log.info("control_server_started", bind=self._config.bind, port=self._config.port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        log.info("control_server_stopped")

    # ------------------------------------------------------------------
    # App construction
    # ------------------------------------------------------------------

    def _build_app(self) -> web.Application:
        app = web.Application(middlewares=[self._auth_middleware])
        app.router.add_post("/monitoring/start", self._handle_start)
        app.router.add_post("/monitoring/stop", self._handle_stop)
        app.router.add_get("/status", self._handle_status)
        app.router.add_put("/config", self._handle_config)
        app.router.add_post("/webhook/test", self._handle_test)
        app.router.add_post("/sms/simulate", self._handle_simulate)
        app.router.add_get("/deliveries", self._handle_deliveries)
        return app

    @web.middleware
    async def _auth_middleware(self, request: web.Request, handler: Any) -> web.StreamResponse:
        if self._config.token:
            provided = request.headers.get("X-Control-Token", "")
            if not provided or not hmac.compare_digest(provided, self._config.token):
                return _error(401, "Invalid token")
        try:
            return await handler(request)
        except InvalidArgumentError as exc:
            return _error(400, str(exc))
        except PermissionDeniedError as exc:
            return _error(403, str(exc))

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    async def _read_json(self, request: web.Request) -> dict[str, Any]:
        try:
            payload = await request.json()
        except Exception:
            raise InvalidArgumentError("Invalid JSON") from None
        if not isinstance(payload, dict):
            raise InvalidArgumentError("Expected a JSON object")
        return payload

    async def _handle_start(self, request: web.Request) -> web.Response:
        payload = await self._read_json(request)
        result = await self._commands.start_monitoring(
            payload.get("webhookUrl"), payload.get("webhookSecret", "")
        )
        return web.json_response(result)

    async def _handle_stop(self, request: web.Request) -> web.Response:
        return web.json_response(await self._commands.stop_monitoring())

    async def _handle_status(self, request: web.Request) -> web.Response:
        return web.json_response(self._commands.get_service_status())

    async def _handle_config(self, request: web.Request) -> web.Response:
        payload = await self._read_json(request)
        result = self._commands.update_webhook_config(
            payload.get("webhookUrl"), payload.get("webhookSecret", "")
        )
        return web.json_response(result)

    async def _handle_test(self, request: web.Request) -> web.Response:
        return web.json_response(await self._commands.test_webhook())

    async def _handle_simulate(self, request: web.Request) -> web.Response:
        payload = await self._read_json(request)
        result = self._commands.simulate_sms(payload.get("sender"), payload.get("body", ""))
        return web.json_response(result)

    async def _handle_deliveries(self, request: web.Request) -> web.Response:
        return web.json_response(self._commands.recent_deliveries())
