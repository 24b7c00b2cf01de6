"""Configuration management with Pydantic Settings + optional YAML."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)


class WebhookConfig(BaseModel):
    """Target endpoint and shared secret. An empty URL disables delivery."""

    model_config = ConfigDict(frozen=True)

    endpoint_url: str = ""
    shared_secret: str = ""

    @property
    def enabled(self) -> bool:
        return bool(self.endpoint_url)


class DeliveryConfig(BaseModel):
    workers: int = Field(default=3, ge=1)
    connect_timeout: float = 10.0
    read_timeout: float = 15.0
    user_agent: str = "smsrelay/0.1.0"
    signature_scheme: Literal["hmac-sha256", "legacy"] = "hmac-sha256"
    recent_limit: int = Field(default=50, ge=0)


class SourceConfig(BaseModel):
    mode: Literal["http", "simulated"] = "http"
    bind: str = "0.0.0.0"
    port: int = 8425
    path: str = "/sms"
    token: str = ""


class ControlConfig(BaseModel):
    enabled: bool = True
    bind: str = "127.0.0.1"
    port: int = 8426
    token: str = ""


class PermissionConfig(BaseModel):
    granted: bool = True


class StatusConfig(BaseModel):
    file: str = ""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SMSRELAY_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    control: ControlConfig = Field(default_factory=ControlConfig)
    permission: PermissionConfig = Field(default_factory=PermissionConfig)
    status: StatusConfig = Field(default_factory=StatusConfig)
    autostart: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Env vars beat the YAML file; nested sections merge key by key
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


def get_config_dir() -> Path:
    env = os.environ.get("SMSRELAY_CONFIG_DIR")
    if env:
        return Path(env)
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        return base / "smsrelay"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "smsrelay"
    xdg = os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
    return Path(xdg) / "smsrelay"


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings from env vars layered over an optional YAML config."""
    if config_path is None:
        config_path = os.environ.get("SMSRELAY_CONFIG")
    if config_path is None:
        config_path = get_config_dir() / "config.yaml"

    path = Path(config_path)
    if not path.exists():
        return Settings()

    class FileSettings(Settings):
        model_config = SettingsConfigDict(yaml_file=path)

    return FileSettings()
