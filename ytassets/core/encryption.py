"""At-rest encryption of provider API keys.

FERNET_KEY may hold several comma-separated keys: the first encrypts, all of
them are tried on decrypt, so keys can be rotated without re-seeding the store.
"""

import logging

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from ytassets.core.config import settings

logger = logging.getLogger(__name__)

_cache: dict[str, MultiFernet] = {}


def _cipher() -> MultiFernet:
    raw = settings.fernet_key
    cipher = _cache.get(raw)
    if cipher is None:
        keys = [k.strip() for k in raw.split(",") if k.strip()]
        if not keys:
            raise ValueError("FERNET_KEY is not configured, provider secrets cannot be stored")
        cipher = MultiFernet([Fernet(k.encode()) for k in keys])
        _cache.clear()
        _cache[raw] = cipher
    return cipher


def encrypt_value(plaintext: str) -> bytes:
    """Encrypt with the primary key. Returns bytes for the LargeBinary column."""
    return _cipher().encrypt(plaintext.encode("utf-8"))


def decrypt_value(ciphertext: bytes) -> str:
    """Decrypt with any configured key. Returns "" when no key matches."""
    if not ciphertext:
        return ""
    try:
        return _cipher().decrypt(ciphertext).decode("utf-8")
    except InvalidToken:
        logger.error("Failed to decrypt provider secret (wrong FERNET_KEY or corrupted row)")
        return ""


def rotate_value(ciphertext: bytes) -> bytes:
    """Re-encrypt *ciphertext* under the primary key."""
    return _cipher().rotate(ciphertext)
