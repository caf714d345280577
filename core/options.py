"""
Per-call configuration for OTP generation, verification and throttling.
"""

import dataclasses
from dataclasses import dataclass

from core import hotp
from core.errors import InvalidOptionsError
from core.hotp import Algorithm, resolve_algorithm, validate_digits

# ── Defaults ──────────────────────────────────────────────────────────────────

DEFAULT_TIME_STEP = 30
DEFAULT_DIGITS = 6
DEFAULT_WINDOW = 1
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_LOCKOUT_DURATION = 300


# ── Validation ────────────────────────────────────────────────────────────────

def validate_time_step(time_step: int) -> None:
    _require_int("time_step", time_step, minimum=1)


def _require_int(name: str, value: int, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidOptionsError(f"'{name}' must be an integer.")
    if value < minimum:
        raise InvalidOptionsError(f"'{name}' must be >= {minimum}, got {value}.")


# ── Options ───────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class OTPOptions:
    """
    Immutable option set.

    Construct one per host (or per call) and pass it explicitly; use
    :meth:`replace` to derive an override.

    Raises:
        InvalidDigitsError:  If ``digits`` is outside [6, 10].
        InvalidOptionsError: If any other field is out of range.
    """

    time_step: int = DEFAULT_TIME_STEP
    digits: int = DEFAULT_DIGITS
    algorithm: Algorithm = Algorithm.SHA1
    window: int = DEFAULT_WINDOW
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    lockout_duration: int = DEFAULT_LOCKOUT_DURATION
    min_secret_bytes: int = hotp.MIN_SECRET_BYTES

    def __post_init__(self) -> None:
        validate_digits(self.digits)
        validate_time_step(self.time_step)
        _require_int("window", self.window, minimum=0)
        _require_int("max_attempts", self.max_attempts, minimum=1)
        _require_int("lockout_duration", self.lockout_duration, minimum=1)
        _require_int("min_secret_bytes", self.min_secret_bytes, minimum=1)
        object.__setattr__(self, "algorithm", resolve_algorithm(self.algorithm))

    def replace(self, **changes) -> "OTPOptions":
        """Return a validated copy with ``changes`` applied."""
        return dataclasses.replace(self, **changes)
