"""
Text encoding of encrypted secrets for storage.

Wraps :class:`core.crypto.EncryptedSecret` in a compact JSON document with
URL-safe base64 byte fields, suitable for a TEXT column or a config file.
Choosing where the text is kept is up to the host.
"""

import base64
import binascii
import json

from core.crypto import KDF, EncryptedSecret
from core.errors import DecryptionFailedError

FORMAT_VERSION = 1


def _b64e(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii")


def _b64d(text: str) -> bytes:
    return base64.b64decode(text.encode("ascii"), altchars=b"-_", validate=True)


def dumps(encrypted: EncryptedSecret) -> str:
    """
    Serialise an encrypted secret to a single line of text.

    Args:
        encrypted: Output of :func:`core.crypto.encrypt_secret`.

    Returns:
        JSON string with every field needed for decryption.
    """
    return json.dumps(
        {
            "v": FORMAT_VERSION,
            "cipher": encrypted.cipher,
            "kdf": KDF(encrypted.kdf).value,
            "iterations": encrypted.kdf_iterations,
            "salt": _b64e(encrypted.salt),
            "nonce": _b64e(encrypted.nonce),
            "ct": _b64e(encrypted.ciphertext),
        },
        separators=(",", ":"),
        sort_keys=True,
    )


def loads(text: str) -> EncryptedSecret:
    """
    Parse text produced by :func:`dumps`.

    Raises:
        DecryptionFailedError: If the text is not a well-formed document.
            Corrupt storage is reported the same way as a failed decryption.
    """
    try:
        doc = json.loads(text)
        if doc["v"] != FORMAT_VERSION:
            raise ValueError(f"unsupported format version {doc['v']!r}")
        iterations = doc["iterations"]
        if isinstance(iterations, bool) or not isinstance(iterations, int):
            raise ValueError("iterations must be an integer")
        return EncryptedSecret(
            ciphertext=_b64d(doc["ct"]),
            nonce=_b64d(doc["nonce"]),
            salt=_b64d(doc["salt"]),
            kdf_iterations=iterations,
            kdf=KDF(doc["kdf"]),
            cipher=str(doc["cipher"]),
        )
    except (ValueError, KeyError, TypeError, AttributeError, binascii.Error):
        raise DecryptionFailedError() from None
