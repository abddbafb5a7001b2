"""
Symmetric encryption for secrets stored at rest (OAuth tokens).
"""

from base64 import urlsafe_b64decode, urlsafe_b64encode
from binascii import Error as Base64Error
from secrets import token_bytes
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from core.config import settings


class TokenCipher:
    """
    AES-256-GCM encryption of short strings.

    Output is URL-safe base64 of nonce + ciphertext + tag.
    """

    _NONCE_LENGTH = 12  # AES-GCM recommended nonce size

    def __init__(self, key: bytes | str | None = None):
        self._key = self._normalize_key(key if key is not None else settings.oauth_encryption_key)

    @staticmethod
    def _normalize_key(key: bytes | str | None) -> bytes:
        """
        Accept raw 32-byte keys or their URL-safe base64 encoding and return raw bytes.
        """
        if key is None:
            raise ValueError("Encryption key must be provided (OAUTH_ENCRYPTION_KEY)")

        key_bytes = key if isinstance(key, bytes) else key.encode("utf-8")

        if len(key_bytes) == 32:
            return key_bytes

        try:
            decoded = urlsafe_b64decode(key_bytes)
        except (Base64Error, ValueError):
            decoded = None

        if decoded and len(decoded) == 32:
            return decoded

        raise ValueError(
            "Encryption key must be 32 bytes (AES-256) or its URL-safe base64 encoding"
        )

    def encrypt(self, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        nonce = token_bytes(self._NONCE_LENGTH)
        ciphertext = AESGCM(self._key).encrypt(nonce, value.encode("utf-8"), None)
        return urlsafe_b64encode(nonce + ciphertext).decode("utf-8")

    def decrypt(self, token: Optional[str]) -> Optional[str]:
        """
        Raises:
            ValueError: Payload was tampered with or encrypted under another key
        """
        if token is None:
            return None
        try:
            raw = urlsafe_b64decode(token.encode("utf-8"))
        except (Base64Error, ValueError) as e:
            raise ValueError("Invalid or corrupted encrypted value") from e
        if len(raw) <= self._NONCE_LENGTH:
            raise ValueError("Invalid encrypted payload")
        nonce, ciphertext = raw[: self._NONCE_LENGTH], raw[self._NONCE_LENGTH :]
        try:
            return AESGCM(self._key).decrypt(nonce, ciphertext, None).decode("utf-8")
        except InvalidTag as e:
            raise ValueError("Invalid or corrupted encrypted value") from e

    @staticmethod
    def generate_key() -> str:
        """New random key, URL-safe base64 encoded for use in env files."""
        return urlsafe_b64encode(AESGCM.generate_key(bit_length=256)).decode("utf-8")
