"""Typed models for messages, delivery outcomes and service state."""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum


def now_millis() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class IncomingEvent:
    sender: str
    body: str
    received_at_millis: int

    @property
    def event_id(self) -> str:
        return str(self.received_at_millis)


@dataclass(frozen=True)
class DeliveryOutcome:
    succeeded: bool
    http_status: int | None = None
    error: str | None = None
    event_id: str = ""
    sender: str = ""

    def to_dict(self) -> dict[str, object]:
        return {
            "succeeded": self.succeeded,
            "httpStatus": self.http_status,
            "error": self.error,
            "eventId": self.event_id,
            "sender": self.sender,
        }


class ServiceState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"


@dataclass(frozen=True)
class ServiceStatus:
    state: ServiceState
    delivered_count: int = 0
    failed_count: int = 0
    pending: int = 0

    @property
    def is_active(self) -> bool:
        return self.state is ServiceState.LISTENING
