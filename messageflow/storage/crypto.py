"""AES-GCM encryption for provider API keys at rest."""

import base64
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

NONCE_SIZE = 12


class SecretError(Exception):
    pass


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


class SecretCipher:
    """Encrypts with the first 32 bytes of the master key.

    Ciphertext is unpadded URL-safe base64 of nonce || sealed data.
    """

    def __init__(self, master_key: str):
        key = master_key.encode("utf-8")
        if len(key) < 32:
            raise SecretError("MASTER_KEY must be at least 32 bytes")
        self._aead = AESGCM(key[:32])

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return _b64encode(nonce + sealed)

    def decrypt(self, encoded: str) -> str:
        try:
            data = _b64decode(encoded)
        except (ValueError, TypeError) as e:
            raise SecretError(f"invalid ciphertext encoding: {e}")
        if len(data) <= NONCE_SIZE:
            raise SecretError("invalid ciphertext")
        try:
            plaintext = self._aead.decrypt(data[:NONCE_SIZE], data[NONCE_SIZE:], None)
        except InvalidTag:
            raise SecretError("ciphertext authentication failed")
        return plaintext.decode("utf-8")
