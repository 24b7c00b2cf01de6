"""Status sinks: where human-readable status text ends up."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from smsrelay.utils.logging import get_logger

log = get_logger(__name__)


class StatusSink(ABC):
    @abstractmethod
    def set_status(self, text: str) -> None: ...


class LogStatusSink(StatusSink):
    def __init__(self) -> None:
        self.last_status = ""

    def set_status(self, text: str) -> None:
        self.last_status = text
        log.info("status_updated", status=text)


class FileStatusSink(StatusSink):
    """Writes the latest status line to a file, like a notification that overwrites itself."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def set_status(self, text: str) -> None:
        self._path.write_text(text + "\n")
