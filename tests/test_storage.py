"""Tests for storage.encryption."""

import dataclasses
import json

import pytest

from core.crypto import KDF, decrypt_secret, encrypt_secret
from core.errors import DecryptionFailedError
from storage.encryption import FORMAT_VERSION, dumps, loads

SECRET = b"12345678901234567890"


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture()
def sealed():
    return encrypt_secret(SECRET, "test_password_123", iterations=2**4)


# ── Round trip ────────────────────────────────────────────────────────────────

def test_dumps_loads_roundtrip(sealed) -> None:
    restored = loads(dumps(sealed))
    assert restored == sealed
    assert decrypt_secret(restored, "test_password_123") == SECRET


def test_dumps_is_single_line_json(sealed) -> None:
    text = dumps(sealed)
    assert "\n" not in text
    doc = json.loads(text)
    assert doc["v"] == FORMAT_VERSION
    assert doc["kdf"] == "scrypt"
    assert doc["iterations"] == 2**4
    assert doc["cipher"] == "AES-256-GCM"


def test_secret_not_in_text(sealed) -> None:
    assert SECRET.decode() not in dumps(sealed)


def test_pbkdf2_roundtrip() -> None:
    sealed = encrypt_secret(SECRET, "pw", kdf=KDF.PBKDF2_SHA256, iterations=1000)
    restored = loads(dumps(sealed))
    assert restored.kdf is KDF.PBKDF2_SHA256
    assert decrypt_secret(restored, "pw") == SECRET


def test_dumps_accepts_plain_string_kdf(sealed) -> None:
    loose = dataclasses.replace(sealed, kdf="scrypt")
    restored = loads(dumps(loose))
    assert restored.kdf is KDF.SCRYPT
    assert decrypt_secret(restored, "test_password_123") == SECRET


# ── Malformed input ───────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "text",
    [
        "",
        "not json",
        "[]",
        "{}",
        json.dumps({"v": 99}),
    ],
)
def test_loads_garbage_raises(text: str) -> None:
    with pytest.raises(DecryptionFailedError):
        loads(text)


@pytest.mark.parametrize(
    "field,value",
    [
        ("kdf", "md5-crypt"),
        ("iterations", "many"),
        ("iterations", True),
        ("salt", "***"),
        ("ct", 42),
    ],
)
def test_loads_bad_field_raises(sealed, field: str, value) -> None:
    doc = json.loads(dumps(sealed))
    doc[field] = value
    with pytest.raises(DecryptionFailedError):
        loads(json.dumps(doc))


def test_tampered_document_fails_decryption(sealed) -> None:
    doc = json.loads(dumps(sealed))
    doc["iterations"] = 2**5
    restored = loads(json.dumps(doc))
    with pytest.raises(DecryptionFailedError):
        decrypt_secret(restored, "test_password_123")
