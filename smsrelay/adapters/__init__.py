"""Host collaborators: permission gate and status presentation."""

from smsrelay.adapters.permissions import PermissionGate, StaticPermissionGate
from smsrelay.adapters.presentation import FileStatusSink, LogStatusSink, StatusSink

__all__ = [
    "PermissionGate",
    "StaticPermissionGate",
    "StatusSink",
    "LogStatusSink",
    "FileStatusSink",
]
