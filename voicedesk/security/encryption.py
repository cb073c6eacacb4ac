"""Symmetric encryption for vendor credentials stored at rest.

Values are encrypted with Fernet using a key derived from ``ENCRYPTION_KEY``
(and optionally ``ENCRYPTION_SALT``) via PBKDF2-HMAC-SHA256.
"""

from __future__ import annotations

import base64
import os
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

_DEFAULT_SALT = b"voicedesk-credential-salt"
_ITERATIONS = 100_000


class EncryptionError(RuntimeError):
    """Raised when a value cannot be encrypted or decrypted."""


def get_master_key() -> str:
    key = (os.getenv("ENCRYPTION_KEY") or "").strip()
    if not key:
        raise EncryptionError("ENCRYPTION_KEY environment variable is not set")
    return key


@lru_cache(maxsize=4)
def _fernet_for(master_key: str, salt: bytes) -> Fernet:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=_ITERATIONS,
    )
    return Fernet(base64.urlsafe_b64encode(kdf.derive(master_key.encode("utf-8"))))


def get_fernet() -> Fernet:
    salt_env = os.getenv("ENCRYPTION_SALT")
    salt = salt_env.encode("utf-8") if salt_env else _DEFAULT_SALT
    return _fernet_for(get_master_key(), salt)


def encrypt_value(plaintext: str) -> str:
    """Encrypt ``plaintext`` and return the Fernet token as text."""

    return get_fernet().encrypt(plaintext.encode("utf-8")).decode("ascii")


def decrypt_value(token: str) -> str:
    """Decrypt a value produced by :func:`encrypt_value`.

    Raises:
        EncryptionError: If the key is missing or the token was not produced
            with the current key.
    """

    try:
        return get_fernet().decrypt(token.encode("ascii")).decode("utf-8")
    except (InvalidToken, UnicodeError, ValueError) as exc:
        raise EncryptionError("Stored value could not be decrypted") from exc


__all__ = ["EncryptionError", "decrypt_value", "encrypt_value", "get_master_key"]
