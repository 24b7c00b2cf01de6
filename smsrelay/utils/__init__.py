"""Utility modules for smsrelay."""

from smsrelay.utils.logging import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
