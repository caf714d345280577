"""
Error taxonomy for OTPGuard.

Every error carries a stable ``code`` so callers can branch on the kind of
failure without matching message strings.
"""

from typing import Optional


class OTPError(ValueError):
    """Base class for all OTPGuard errors."""

    code = "OTP_ERROR"


class InvalidSecretError(OTPError):
    """Secret is empty or shorter than the configured minimum."""

    code = "INVALID_SECRET"


class InvalidDigitsError(OTPError):
    """Requested OTP length is outside [6, 10]."""

    code = "INVALID_DIGITS"


class InvalidBase32Error(OTPError):
    """Textual secret is not valid RFC 4648 Base32."""

    code = "INVALID_BASE32"


class InvalidOptionsError(OTPError):
    """Out-of-range option, counter or timestamp."""

    code = "INVALID_OPTIONS"


class ThrottledError(OTPError):
    """Attempt rejected because the identifier is locked out."""

    code = "THROTTLED"

    def __init__(self, identifier: str, lockout_expires_at: Optional[float]) -> None:
        super().__init__(f"Too many failed attempts for '{identifier}'.")
        self.identifier = identifier
        self.lockout_expires_at = lockout_expires_at


class DecryptionFailedError(OTPError):
    """
    Encrypted secret could not be authenticated.

    The message is fixed: a wrong password and a corrupted blob must look
    identical to the caller.
    """

    code = "DECRYPTION_FAILED"

    def __init__(self) -> None:
        super().__init__("Unable to decrypt secret.")
