"""Command surface: the operations a host bridge invokes."""

from __future__ import annotations

from typing import Any

from smsrelay.config import WebhookConfig
from smsrelay.core.lifecycle import LifecycleController, SmsRelayError
from smsrelay.models import IncomingEvent, now_millis
from smsrelay.sources.simulated import SimulatedMessageSource
from smsrelay.utils.logging import get_logger

log = get_logger(__name__)

TEST_SENDER = "TEST-SENDER"
TEST_MESSAGE = "This is a webhook test message from smsrelay"


class InvalidArgumentError(SmsRelayError):
    pass


def _require_str(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise InvalidArgumentError(f"{name} must be a string")
    return value


class CommandSurface:
    """Validates arguments and maps results into bridge-friendly dicts.

    Only permission and malformed-input errors escape; everything on the
    delivery path is observable through status only.
    """

    def __init__(
        self,
        controller: LifecycleController,
        simulator: SimulatedMessageSource | None = None,
    ) -> None:
        self._controller = controller
        self._simulator = simulator

    async def start_monitoring(self, webhook_url: Any, webhook_secret: Any = "") -> dict[str, Any]:
        url = _require_str("webhookUrl", webhook_url).strip()
        secret = _require_str("webhookSecret", webhook_secret or "")
        if not url:
            raise InvalidArgumentError("webhookUrl is required")

        await self._controller.start(WebhookConfig(endpoint_url=url, shared_secret=secret))
        return {"success": True}

    async def stop_monitoring(self) -> dict[str, Any]:
        try:
            await self._controller.stop()
        except Exception:
            log.exception("stop_monitoring_error")
        return {"success": True}

    def get_service_status(self) -> dict[str, Any]:
        status = self._controller.status()
        return {
            "success": True,
            "isActive": status.is_active,
            "state": status.state.value,
            "deliveredCount": status.delivered_count,
            "failedCount": status.failed_count,
            "pending": status.pending,
        }

    def update_webhook_config(self, webhook_url: Any, webhook_secret: Any = "") -> dict[str, Any]:
        url = _require_str("webhookUrl", webhook_url).strip()
        secret = _require_str("webhookSecret", webhook_secret or "")
        self._controller.update_config(url, secret)
        return {"success": True}

    async def test_webhook(self) -> dict[str, Any]:
        config = self._controller.config_store.get()
        if not config.endpoint_url:
            raise InvalidArgumentError("webhook URL is not configured")

        event = IncomingEvent(
            sender=TEST_SENDER, body=TEST_MESSAGE, received_at_millis=now_millis()
        )
        outcome = await self._controller.engine.deliver(event, config)
        log.info("webhook_test", succeeded=outcome.succeeded, status=outcome.http_status)
        return {
            "success": outcome.succeeded,
            "httpStatus": outcome.http_status,
            "error": outcome.error,
        }

    def simulate_sms(self, sender: Any, body: Any) -> dict[str, Any]:
        sender = _require_str("sender", sender).strip()
        body = _require_str("body", body)
        if not sender:
            raise InvalidArgumentError("sender is required")

        if self._simulator is not None:
            accepted = self._simulator.inject(sender, body)
        else:
            accepted = self._controller.status().is_active
            self._controller.receive(
                IncomingEvent(sender=sender, body=body, received_at_millis=now_millis())
            )
        return {"success": True, "accepted": accepted}

    def recent_deliveries(self) -> dict[str, Any]:
        outcomes = self._controller.engine.recent_outcomes()
        return {"success": True, "deliveries": [o.to_dict() for o in outcomes]}
