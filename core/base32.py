"""
Base32 (RFC 4648) codec for textual secret exchange.

The output alphabet and padding rules match what authenticator apps expect
in the ``secret`` parameter of ``otpauth://`` URIs.
"""

import base64
import binascii
import re
import secrets
from contextlib import contextmanager
from typing import Iterator

from core.errors import InvalidBase32Error, InvalidOptionsError
from core.memory import wipe

DEFAULT_SECRET_SIZE = 20    # 160 bits, RFC 4226 recommendation

_WHITESPACE = re.compile(r"\s+")
_BASE32 = re.compile(r"[A-Za-z2-7]*=*", re.ASCII)
# Unpadded lengths (mod 8) that correspond to a whole number of bytes.
_VALID_REMAINDERS = {0, 2, 4, 5, 7}


# ── Normalisation ─────────────────────────────────────────────────────────────

def normalize_secret(secret: str) -> str:
    """
    Normalise a base32 secret: strip whitespace, uppercase, pad.

    Args:
        secret: Raw user-supplied secret string.

    Returns:
        Uppercase base32 string padded to a multiple of 8 characters.

    Raises:
        InvalidBase32Error: If the string contains characters outside the
            alphabet, misplaced padding, or has an impossible length.
    """
    secret = _WHITESPACE.sub("", secret)
    if not _BASE32.fullmatch(secret):
        raise InvalidBase32Error("Secret contains invalid base32 characters.")
    secret = secret.upper()
    body = secret.rstrip("=")
    if len(body) % 8 not in _VALID_REMAINDERS:
        raise InvalidBase32Error(f"Invalid base32 length: {len(body)} characters.")
    pad = (8 - len(body) % 8) % 8
    if len(secret) != len(body) and len(secret) != len(body) + pad:
        raise InvalidBase32Error("Secret has incorrect base32 padding.")
    return body + "=" * pad


# ── Codec ─────────────────────────────────────────────────────────────────────

def decode_secret(secret: str) -> bytearray:
    """
    Decode a base32-encoded secret string to raw bytes.

    Case-insensitive; padding is optional.

    Args:
        secret: Base32 secret (whitespace is stripped).

    Returns:
        Raw secret in a mutable buffer the caller can :func:`wipe`.

    Raises:
        InvalidBase32Error: On invalid base32 input.
    """
    try:
        return bytearray(base64.b32decode(normalize_secret(secret)))
    except binascii.Error as exc:
        raise InvalidBase32Error(f"Invalid base32 secret: {exc}") from exc


def encode_secret(raw: bytes, padding: bool = False) -> str:
    """Encode raw bytes as an uppercase base32 string."""
    encoded = base64.b32encode(bytes(raw)).decode("ascii")
    return encoded if padding else encoded.rstrip("=")


@contextmanager
def decoded_secret(secret: str) -> Iterator[bytearray]:
    """Decode ``secret`` for the duration of a ``with`` block, then wipe it."""
    raw = decode_secret(secret)
    try:
        yield raw
    finally:
        wipe(raw)


# ── Generation ────────────────────────────────────────────────────────────────

def generate_secret(size: int = DEFAULT_SECRET_SIZE) -> bytearray:
    """Return ``size`` bytes from the OS CSPRNG as a fresh secret."""
    if size < 1:
        raise InvalidOptionsError("Secret size must be positive.")
    return bytearray(secrets.token_bytes(size))
