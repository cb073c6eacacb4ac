"""Security utilities exposed for convenience."""

from .auth import (
    CurrentMember,
    get_current_member,
    get_current_user,
    get_db_session,
    require_admin,
)
from .encryption import EncryptionError, decrypt_value, encrypt_value

__all__ = [
    "CurrentMember",
    "EncryptionError",
    "decrypt_value",
    "encrypt_value",
    "get_current_member",
    "get_current_user",
    "get_db_session",
    "require_admin",
]
