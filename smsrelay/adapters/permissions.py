"""Permission gate guarding activation of the message source."""

from __future__ import annotations

from abc import ABC, abstractmethod

from smsrelay.utils.logging import get_logger

log = get_logger(__name__)


class PermissionGate(ABC):
    @abstractmethod
    def has_permission(self) -> bool: ...

    @abstractmethod
    async def request_permission(self) -> bool:
        """Ask for the capability. Returns True if it is granted afterwards."""
        ...


class StaticPermissionGate(PermissionGate):
    """Grant decided up front by configuration."""

    def __init__(self, granted: bool = True) -> None:
        self.granted = granted

    def has_permission(self) -> bool:
        return self.granted

    async def request_permission(self) -> bool:
        if not self.granted:
            log.warning("sms_permission_not_granted")
        return self.granted
