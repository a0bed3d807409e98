"""AES-256-GCM encryption stage for cached file content."""

import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..errors import CacheIntegrityError

KEY_VERSION = b"v1"
NONCE_LENGTH = 12


def derive_key(secret: str) -> bytes:
    """Derive a 256-bit key from the application-wide secret."""
    return hashlib.sha256(secret.encode() + b"vigil_content_cache" + KEY_VERSION).digest()


class ContentCipher:
    """Authenticated bytes -> bytes transform.

    Payload layout: ``KEY_VERSION || nonce (12 bytes) || ciphertext+tag``.
    A fresh random nonce is drawn for every call to ``encrypt``.
    """

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("An encryption secret is required")
        self._aead = AESGCM(derive_key(secret))

    def encrypt(self, data: bytes) -> bytes:
        nonce = os.urandom(NONCE_LENGTH)
        return KEY_VERSION + nonce + self._aead.encrypt(nonce, data, KEY_VERSION)

    def decrypt(self, payload: bytes) -> bytes:
        header = len(KEY_VERSION)
        if len(payload) < header + NONCE_LENGTH:
            raise CacheIntegrityError("Encrypted payload is truncated")
        if payload[:header] != KEY_VERSION:
            raise CacheIntegrityError("Unsupported encryption version")
        nonce = payload[header:header + NONCE_LENGTH]
        try:
            return self._aead.decrypt(nonce, payload[header + NONCE_LENGTH:], KEY_VERSION)
        except InvalidTag as e:
            raise CacheIntegrityError("Decryption failed - possible data corruption or tampering") from e
