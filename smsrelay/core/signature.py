"""Payload signatures for outbound webhooks.

The signed string is ``body + sender + str(received_at_millis)``. Two schemes
are supported:

``hmac-sha256``
    HMAC-SHA256 keyed by the shared secret, hex encoded (64 chars).

``legacy``
    The 32-bit rolling hash used by the first Android forwarder
    (``h = h * 31 + c`` over UTF-16 code units of the signed string followed
    by the secret). Forgeable; only for receivers pinned to that format.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Literal

from smsrelay.models import IncomingEvent

SignatureScheme = Literal["hmac-sha256", "legacy"]

_INT32_MIN = -(2**31)


def canonical_string(event: IncomingEvent) -> str:
    return f"{event.body}{event.sender}{event.received_at_millis}"


def hmac_signature(event: IncomingEvent, secret: str) -> str:
    return hmac.new(
        secret.encode(), canonical_string(event).encode(), hashlib.sha256
    ).hexdigest()


def legacy_signature(event: IncomingEvent, secret: str) -> str:
    data = (canonical_string(event) + secret).encode("utf-16-be")
    h = 0
    for i in range(0, len(data), 2):
        unit = (data[i] << 8) | data[i + 1]
        h = (h * 31 + unit) & 0xFFFFFFFF

    signed = h - 2**32 if h >= 2**31 else h
    # abs(INT_MIN) overflows back to INT_MIN in 32-bit arithmetic
    magnitude = signed if signed == _INT32_MIN else abs(signed)
    return format(magnitude & 0xFFFFFFFF, "x")


def compute_signature(
    event: IncomingEvent, secret: str, scheme: SignatureScheme = "hmac-sha256"
) -> str:
    """Return the hex signature of *event* under *secret*."""
    if scheme == "hmac-sha256":
        return hmac_signature(event, secret)
    if scheme == "legacy":
        return legacy_signature(event, secret)
    raise ValueError(f"Unknown signature scheme: {scheme}")


def verify_signature(
    event: IncomingEvent,
    secret: str,
    signature: str,
    scheme: SignatureScheme = "hmac-sha256",
) -> bool:
    """Constant-time check of a received signature. Empty signatures never match."""
    if not signature:
        return False
    expected = compute_signature(event, secret, scheme)
    return hmac.compare_digest(expected, signature)
