"""
TOTP (Time-based One-Time Password) implementation following RFC 6238.

Maps wall-clock time onto HOTP counters. Produces codes identical to
Google Authenticator for the default options.
"""

import math
import time
from dataclasses import dataclass
from typing import Optional

from core.errors import InvalidOptionsError
from core.hotp import MAX_COUNTER, generate_hotp
from core.options import OTPOptions, validate_time_step


@dataclass(frozen=True)
class TotpCode:
    """A generated TOTP token and where it sits in its time step."""

    token: str
    time_remaining: int     # whole seconds until the next step
    progress: float         # elapsed fraction of the current step, in [0, 1)


# ── Clock-to-counter ──────────────────────────────────────────────────────────

def resolve_timestamp(timestamp: Optional[float] = None) -> int:
    """
    Return ``timestamp`` (or the current time) as whole Unix seconds.

    Raises:
        InvalidOptionsError: If the timestamp is negative or not a number.
    """
    t = time.time() if timestamp is None else timestamp
    if isinstance(t, bool) or not isinstance(t, (int, float)) or not math.isfinite(t):
        raise InvalidOptionsError("Timestamp must be a finite number of seconds.")
    if t < 0:
        raise InvalidOptionsError(f"Timestamp must not be before the Unix epoch, got {t}.")
    return int(t)


def counter_for(timestamp: float, period: int = 30) -> int:
    """Return the TOTP counter ``floor(timestamp / period)``."""
    validate_time_step(period)
    counter = resolve_timestamp(timestamp) // period
    if counter > MAX_COUNTER:
        raise InvalidOptionsError("Timestamp is too far in the future.")
    return counter


def remaining_seconds(period: int = 30, timestamp: Optional[float] = None) -> int:
    """Return seconds until the current TOTP window expires."""
    t = resolve_timestamp(timestamp)
    return period - (t % period)


def progress(period: int = 30, timestamp: Optional[float] = None) -> float:
    """Return how far through the current window ``timestamp`` is, in [0, 1)."""
    return (period - remaining_seconds(period, timestamp)) / period


# ── Generation ────────────────────────────────────────────────────────────────

def generate_totp(
    secret_bytes: bytes,
    options: OTPOptions = OTPOptions(),
    timestamp: Optional[float] = None,
) -> TotpCode:
    """
    Generate a TOTP code.

    Args:
        secret_bytes: Raw (already base32-decoded) secret bytes.
        options:      Time step, digits, algorithm and secret policy.
        timestamp:    Override Unix timestamp (uses time.time() if None).

    Returns:
        :class:`TotpCode` with the token and its remaining lifetime.

    Raises:
        InvalidSecretError:  If the secret fails the length policy.
        InvalidOptionsError: If the timestamp is negative.
    """
    t = resolve_timestamp(timestamp)
    token = generate_hotp(
        secret_bytes,
        counter_for(t, options.time_step),
        digits=options.digits,
        algorithm=options.algorithm,
        min_secret_bytes=options.min_secret_bytes,
    )
    return TotpCode(
        token=token,
        time_remaining=remaining_seconds(options.time_step, t),
        progress=progress(options.time_step, t),
    )
