"""Process-wide, hot-swappable webhook configuration."""

from __future__ import annotations

import threading

from smsrelay.config import WebhookConfig
from smsrelay.utils.logging import get_logger

log = get_logger(__name__)


class ConfigStore:
    """Holds the current WebhookConfig. Last write wins, no history."""

    def __init__(self, initial: WebhookConfig | None = None) -> None:
        self._lock = threading.Lock()
        self._config = initial or WebhookConfig()

    def get(self) -> WebhookConfig:
        with self._lock:
            return self._config

    def set(self, endpoint_url: str, shared_secret: str) -> WebhookConfig:
        config = WebhookConfig(endpoint_url=endpoint_url, shared_secret=shared_secret)
        with self._lock:
            self._config = config
        log.info(
            "webhook_config_updated",
            endpoint_url=endpoint_url,
            has_secret=bool(shared_secret),
        )
        return config

    def update(self, config: WebhookConfig) -> WebhookConfig:
        return self.set(config.endpoint_url, config.shared_secret)
