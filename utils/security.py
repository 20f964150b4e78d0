"""
security helpers:
- Argon2 password hashing via argon2-cffi
- high-entropy identifiers for refresh token records
"""
from __future__ import annotations

import secrets

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError

ph = PasswordHasher()

TOKEN_ID_BYTES = 32


def hash_password(password: str) -> str:
    """Hash a plaintext password using Argon2
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """ Verify a plaintext password using argon2
    """
    try:
        return ph.verify(password_hash, password)
    except (VerifyMismatchError, InvalidHashError):
        return False


def generate_token_id() -> str:
    """256 random bits, hex encoded. Used as the refresh token rotation key."""
    return secrets.token_hex(TOKEN_ID_BYTES)
