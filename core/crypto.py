"""
Password-based encryption of OTP secrets at rest.

Key derivation  : scrypt (default) or PBKDF2-HMAC-SHA256
Encryption      : AES-256-GCM (authenticated encryption)
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from core.errors import DecryptionFailedError, InvalidOptionsError
from core.memory import wipe

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────────────────

SALT_SIZE = 32          # 256-bit salt
NONCE_SIZE = 12         # 96-bit nonce (GCM recommendation)
KEY_SIZE = 32           # 256-bit AES key
CIPHER = "AES-256-GCM"

SCRYPT_N = 2**15        # 32 MiB with r=8
SCRYPT_R = 8
SCRYPT_P = 1
SCRYPT_MAX_N = 2**20    # refuse stored parameters that would exhaust memory
PBKDF2_ITERATIONS = 600_000  # OWASP 2023 recommendation for PBKDF2-SHA256
PBKDF2_MAX_ITERATIONS = 10_000_000
PBKDF2_HASH = "sha256"


class KDF(str, Enum):
    """Supported key-derivation functions."""

    SCRYPT = "scrypt"
    PBKDF2_SHA256 = "pbkdf2-sha256"


_DEFAULT_COST = {
    KDF.SCRYPT: SCRYPT_N,
    KDF.PBKDF2_SHA256: PBKDF2_ITERATIONS,
}


@dataclass(frozen=True)
class EncryptedSecret:
    """
    Self-describing encrypted secret.

    ``ciphertext`` carries the 16-byte GCM tag at its end. ``kdf_iterations``
    is the scrypt cost parameter ``n`` or the PBKDF2 iteration count.
    """

    ciphertext: bytes
    nonce: bytes
    salt: bytes
    kdf_iterations: int
    kdf: KDF = KDF.SCRYPT
    cipher: str = CIPHER

    def associated_data(self) -> bytes:
        """Header bound into the GCM tag so KDF parameters cannot be swapped."""
        return f"{self.cipher}|{KDF(self.kdf).value}|{self.kdf_iterations}".encode("ascii")


# ── Key derivation ────────────────────────────────────────────────────────────

def generate_salt() -> bytes:
    """Return a cryptographically random 32-byte salt."""
    return secrets.token_bytes(SALT_SIZE)


def derive_key(
    password: str,
    salt: bytes,
    kdf: KDF = KDF.SCRYPT,
    iterations: Optional[int] = None,
) -> bytearray:
    """
    Derive a 256-bit key from ``password``.

    Args:
        password:   Password (unicode string).
        salt:       Random salt.
        kdf:        Key-derivation function.
        iterations: scrypt ``n`` or PBKDF2 iteration count; defaults per KDF.

    Returns:
        32-byte derived key in a buffer the caller must :func:`wipe`.

    Raises:
        InvalidOptionsError: If the cost parameter is out of range.
    """
    kdf = KDF(kdf)
    cost = _DEFAULT_COST[kdf] if iterations is None else iterations
    secret = bytearray(password.encode("utf-8"))
    try:
        if kdf is KDF.SCRYPT:
            if not 2 <= cost <= SCRYPT_MAX_N or cost & (cost - 1):
                raise InvalidOptionsError(f"scrypt cost out of range: {cost}")
            derived = Scrypt(salt=salt, length=KEY_SIZE, n=cost, r=SCRYPT_R, p=SCRYPT_P).derive(secret)
        else:
            if not 1 <= cost <= PBKDF2_MAX_ITERATIONS:
                raise InvalidOptionsError(f"PBKDF2 iteration count out of range: {cost}")
            derived = hashlib.pbkdf2_hmac(PBKDF2_HASH, secret, salt, cost, dklen=KEY_SIZE)
        return bytearray(derived)
    finally:
        wipe(secret)


# ── AES-256-GCM encryption / decryption ──────────────────────────────────────

def encrypt_secret(
    secret_bytes: bytes,
    password: str,
    kdf: KDF = KDF.SCRYPT,
    iterations: Optional[int] = None,
) -> EncryptedSecret:
    """
    Encrypt ``secret_bytes`` under a key derived from ``password``.

    A fresh salt and nonce are drawn for every call, so encrypting the same
    secret twice never produces the same output.

    Args:
        secret_bytes: Raw secret; left untouched.
        password:     Password to derive the key from.
        kdf:          Key-derivation function.
        iterations:   Cost parameter; defaults per KDF.

    Returns:
        :class:`EncryptedSecret` carrying everything needed to decrypt.

    Raises:
        InvalidOptionsError: If the cost parameter is out of range.
    """
    kdf = KDF(kdf)
    salt = generate_salt()
    nonce = secrets.token_bytes(NONCE_SIZE)
    cost = _DEFAULT_COST[kdf] if iterations is None else iterations
    header = EncryptedSecret(b"", nonce, salt, cost, kdf)
    key = derive_key(password, salt, kdf, cost)
    try:
        ciphertext = AESGCM(key).encrypt(nonce, secret_bytes, header.associated_data())
    finally:
        wipe(key)
    return EncryptedSecret(
        ciphertext=ciphertext,
        nonce=nonce,
        salt=salt,
        kdf_iterations=cost,
        kdf=kdf,
    )


def decrypt_secret(encrypted: EncryptedSecret, password: str) -> bytearray:
    """
    Decrypt an :class:`EncryptedSecret` produced by :func:`encrypt_secret`.

    Args:
        encrypted: Encrypted secret.
        password:  Password used at encryption time.

    Returns:
        Plaintext secret in a buffer the caller should :func:`wipe`.

    Raises:
        DecryptionFailedError: On a wrong password, tampered or malformed
            data. The error is the same in every case.
    """
    try:
        if encrypted.cipher != CIPHER or len(encrypted.nonce) != NONCE_SIZE:
            raise ValueError("unsupported cipher parameters")
        key = derive_key(password, encrypted.salt, KDF(encrypted.kdf), encrypted.kdf_iterations)
    except (ValueError, TypeError):
        logger.warning("Rejected encrypted secret with invalid parameters")
        raise DecryptionFailedError() from None

    try:
        plaintext = AESGCM(key).decrypt(
            encrypted.nonce, encrypted.ciphertext, encrypted.associated_data()
        )
    except (InvalidTag, ValueError, TypeError):
        logger.warning("Encrypted secret failed authentication")
        raise DecryptionFailedError() from None
    finally:
        wipe(key)
    return bytearray(plaintext)
