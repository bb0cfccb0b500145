"""Encryption helpers for storing customer access tokens at rest."""

import base64
import hashlib
from functools import lru_cache

from cryptography.fernet import Fernet

from shopchat.core.config import settings


@lru_cache(maxsize=1)
def _get_fernet() -> Fernet:
    """Get Fernet instance from the encryption key setting.

    The 32-byte Fernet key is the SHA-256 digest of ``encryption_key``.
    Rotating the setting makes previously stored customer tokens unreadable,
    which forces customers through the authorization flow again.
    """
    key_bytes = hashlib.sha256(settings.encryption_key.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(key_bytes))


def encrypt_token(token: str) -> str:
    """Encrypt a token string."""
    return _get_fernet().encrypt(token.encode()).decode()


def decrypt_token(encrypted: str) -> str:
    """Decrypt an encrypted token string."""
    return _get_fernet().decrypt(encrypted.encode()).decode()
