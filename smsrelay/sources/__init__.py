"""smsrelay message sources."""

from smsrelay.sources.base import EventHandler, MessageSource
from smsrelay.sources.http import HttpMessageSource
from smsrelay.sources.simulated import SimulatedMessageSource

__all__ = [
    "EventHandler",
    "MessageSource",
    "HttpMessageSource",
    "SimulatedMessageSource",
]
