"""smsrelay entry point: wires everything together and runs the service."""

from __future__ import annotations

import asyncio
import signal
import sys

import click

from smsrelay import __version__
from smsrelay.adapters.permissions import StaticPermissionGate
from smsrelay.adapters.presentation import FileStatusSink, LogStatusSink, StatusSink
from smsrelay.config import Settings, load_settings
from smsrelay.control.server import ControlServer
from smsrelay.core.commands import CommandSurface
from smsrelay.core.lifecycle import LifecycleController, PermissionDeniedError
from smsrelay.core.signature import compute_signature
from smsrelay.core.status import StatusReporter
from smsrelay.models import IncomingEvent, now_millis
from smsrelay.sources.base import MessageSource
from smsrelay.sources.http import HttpMessageSource
from smsrelay.sources.simulated import SimulatedMessageSource
from smsrelay.utils.logging import get_logger, setup_logging

log = get_logger(__name__)


class SmsRelay:
    """Main application orchestrator."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

        self.simulator: SimulatedMessageSource | None = None
        if settings.source.mode == "simulated":
            self.simulator = SimulatedMessageSource()
            self.source: MessageSource = self.simulator
        else:
            self.source = HttpMessageSource(settings.source)

        sink: StatusSink = (
            FileStatusSink(settings.status.file) if settings.status.file else LogStatusSink()
        )
        self.controller = LifecycleController(
            self.source,
            StaticPermissionGate(settings.permission.granted),
            delivery_config=settings.delivery,
            reporter=StatusReporter(sink),
        )
        self.controller.update_config(
            settings.webhook.endpoint_url, settings.webhook.shared_secret
        )
        self.commands = CommandSurface(self.controller, simulator=self.simulator)
        self.control: ControlServer | None = None
        if settings.control.enabled:
            self.control = ControlServer(settings.control, self.commands)

    async def start(self) -> None:
        log.info("smsrelay_starting", version=__version__, source=self.source.source_name)

        if self.control is not None:
            await self.control.start()

        if self.settings.autostart:
            if not self.settings.webhook.endpoint_url:
                log.warning("autostart_without_webhook")
            try:
                await self.controller.start(self.settings.webhook)
            except PermissionDeniedError:
                log.error("autostart_permission_denied")

        log.info("smsrelay_ready", state=self.controller.state.value)

    async def stop(self) -> None:
        log.info("smsrelay_stopping")
        await self.controller.close()
        if self.control is not None:
            await self.control.stop()
        log.info("smsrelay_stopped")


async def run(settings: Settings) -> None:
    app = SmsRelay(settings)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        log.info("shutdown_signal")
        stop_event.set()

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _signal_handler)

    await app.start()

    try:
        if sys.platform == "win32":
            while not stop_event.is_set():
                await asyncio.sleep(1)
        else:
            await stop_event.wait()
    except KeyboardInterrupt:
        pass
    finally:
        await app.stop()


@click.group()
@click.version_option(__version__, prog_name="smsrelay")
def cli() -> None:
    """Forward incoming SMS to a signed webhook."""


@cli.command("run")
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
@click.option("--autostart", is_flag=True, help="Start monitoring immediately")
def run_command(config_path: str | None, log_level: str | None, autostart: bool) -> None:
    """Start the relay service."""
    settings = load_settings(config_path)
    if log_level:
        settings.log_level = log_level
    if autostart:
        settings.autostart = True
    setup_logging(level=settings.log_level, json_output=settings.log_json)
    asyncio.run(run(settings))


@cli.command("sign")
@click.option("--sender", required=True, help="Originating address")
@click.option("--body", required=True, help="Message text")
@click.option("--timestamp", type=int, default=None, help="Receipt time in epoch millis")
@click.option("--secret", default="", help="Shared webhook secret")
@click.option(
    "--scheme",
    type=click.Choice(["hmac-sha256", "legacy"]),
    default="hmac-sha256",
    show_default=True,
)
def sign_command(
    sender: str, body: str, timestamp: int | None, secret: str, scheme: str
) -> None:
    """Print the signature a receiver should expect for a message."""
    event = IncomingEvent(
        sender=sender,
        body=body,
        received_at_millis=timestamp if timestamp is not None else now_millis(),
    )
    click.echo(f"timestamp: {event.received_at_millis}")
    click.echo(f"signature: {compute_signature(event, secret, scheme)}")  # type: ignore[arg-type]


if __name__ == "__main__":
    cli()
