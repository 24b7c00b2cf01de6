"""Abstract message source base class."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from smsrelay.models import IncomingEvent

EventHandler = Callable[[IncomingEvent], None]


class MessageSource(ABC):
    """Delivers decoded incoming messages to a single registered handler."""

    def __init__(self) -> None:
        self._handler: EventHandler | None = None

    @property
    @abstractmethod
    def source_name(self) -> str: ...

    @property
    def is_active(self) -> bool:
        return self._handler is not None

    @abstractmethod
    async def start(self, handler: EventHandler) -> None: ...

    @abstractmethod
    async def stop(self) -> None: ...
