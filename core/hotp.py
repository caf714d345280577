"""
HOTP (HMAC-based One-Time Password) implementation following RFC 4226.
"""

import hmac
import struct
from enum import Enum

from core.errors import InvalidDigitsError, InvalidOptionsError, InvalidSecretError

MIN_DIGITS = 6
MAX_DIGITS = 10
MIN_SECRET_BYTES = 16   # RFC 4226 R6: at least 128 bits
MAX_COUNTER = 2**64 - 1


class Algorithm(str, Enum):
    """Supported HMAC algorithms."""

    SHA1 = "SHA1"
    SHA256 = "SHA256"
    SHA512 = "SHA512"


_ALG_MAP: dict[str, str] = {
    Algorithm.SHA1: "sha1",
    Algorithm.SHA256: "sha256",
    Algorithm.SHA512: "sha512",
}


# ── Validation ────────────────────────────────────────────────────────────────

def validate_digits(digits: int) -> None:
    if isinstance(digits, bool) or not isinstance(digits, int):
        raise InvalidDigitsError("Digits must be an integer.")
    if not MIN_DIGITS <= digits <= MAX_DIGITS:
        raise InvalidDigitsError(
            f"Digits must be between {MIN_DIGITS} and {MAX_DIGITS}, got {digits}."
        )


def validate_secret(secret_bytes: bytes, min_secret_bytes: int = MIN_SECRET_BYTES) -> None:
    if not secret_bytes:
        raise InvalidSecretError("Secret must not be empty.")
    if len(secret_bytes) < min_secret_bytes:
        raise InvalidSecretError(
            f"Secret must be at least {min_secret_bytes} bytes, got {len(secret_bytes)}."
        )


def resolve_algorithm(algorithm) -> Algorithm:
    """Map an enum member or a name such as ``"sha256"`` onto :class:`Algorithm`."""
    if isinstance(algorithm, Algorithm):
        return algorithm
    try:
        return Algorithm(str(algorithm).upper())
    except ValueError:
        raise InvalidOptionsError(
            f"Unsupported algorithm '{algorithm}'. Supported: SHA1, SHA256, SHA512."
        ) from None


def validate_counter(counter: int) -> None:
    if isinstance(counter, bool) or not isinstance(counter, int):
        raise InvalidOptionsError("Counter must be an integer.")
    if not 0 <= counter <= MAX_COUNTER:
        raise InvalidOptionsError(f"Counter must fit in 64 unsigned bits, got {counter}.")


# ── Core ──────────────────────────────────────────────────────────────────────

def hotp_value(secret_bytes: bytes, counter: int, digits: int, algorithm: Algorithm) -> str:
    """
    Core HOTP computation (RFC 4226 §5) on already-validated input.

    Args:
        secret_bytes: Raw decoded secret.
        counter:      Counter value, serialised as 8 bytes big-endian.
        digits:       Number of OTP digits.
        algorithm:    HMAC algorithm.

    Returns:
        Zero-padded OTP string of exactly ``digits`` characters.
    """
    msg = struct.pack(">Q", counter)
    digest = hmac.new(secret_bytes, msg, _ALG_MAP[algorithm]).digest()

    # Dynamic truncation
    offset = digest[-1] & 0x0F
    code = struct.unpack(">I", digest[offset : offset + 4])[0] & 0x7FFFFFFF
    return str(code % (10**digits)).zfill(digits)


def generate_hotp(
    secret_bytes: bytes,
    counter: int,
    digits: int = 6,
    algorithm: Algorithm = Algorithm.SHA1,
    min_secret_bytes: int = MIN_SECRET_BYTES,
) -> str:
    """
    Generate an HOTP code.

    The secret is not modified; wiping it afterwards is up to the caller.

    Args:
        secret_bytes:     Raw decoded secret bytes.
        counter:          Synchronisation counter value.
        digits:           Number of OTP digits (6 to 10).
        algorithm:        HMAC algorithm.
        min_secret_bytes: Shortest secret accepted.

    Returns:
        Zero-padded OTP string.

    Raises:
        InvalidSecretError:  If the secret is empty or too short.
        InvalidDigitsError:  If ``digits`` is out of range.
        InvalidOptionsError: If ``counter`` does not fit in 64 unsigned bits.
    """
    validate_secret(secret_bytes, min_secret_bytes)
    validate_digits(digits)
    validate_counter(counter)
    return hotp_value(secret_bytes, counter, digits, resolve_algorithm(algorithm))
