"""
Credential encryption at rest.

AES-256-GCM via ``cryptography``. A token is
``base64(nonce(12) || ciphertext || tag(16))`` with a fresh random nonce per
call, so encrypting the same secret twice gives different tokens. Any
tampering is detected on decrypt.
"""

import base64
import binascii
import logging
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger("pix_gateway.security")

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16


class CipherError(Exception):
    """Base exception for credential encryption failures."""


class InvalidKeyError(CipherError):
    """Key is not exactly 32 bytes (or not valid base64)."""


class DecryptionError(CipherError):
    """Token is malformed, truncated, or fails authentication."""


def generate_key() -> bytes:
    return secrets.token_bytes(KEY_SIZE)


def generate_key_base64() -> str:
    return base64.b64encode(generate_key()).decode("ascii")


class CredentialCipher:
    """Stateless apart from the key; safe to share across tasks and threads."""

    def __init__(self, key: bytes):
        if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_SIZE:
            size = len(key) if isinstance(key, (bytes, bytearray)) else type(key).__name__
            raise InvalidKeyError(f"Key must be {KEY_SIZE} bytes for AES-256-GCM, got {size}")
        self._aesgcm = AESGCM(bytes(key))

    @classmethod
    def from_base64_key(cls, encoded: str) -> "CredentialCipher":
        try:
            key = base64.b64decode(encoded.strip(), validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidKeyError("Encryption key is not valid base64") from e
        return cls(key)

    generate_key = staticmethod(generate_key)
    generate_key_base64 = staticmethod(generate_key_base64)

    def encrypt_bytes(self, plaintext: bytes) -> bytes:
        """Raw ``nonce || ciphertext || tag``; empty in, empty out."""
        if not plaintext:
            return b""
        nonce = secrets.token_bytes(NONCE_SIZE)
        return nonce + self._aesgcm.encrypt(nonce, bytes(plaintext), None)

    def decrypt_bytes(self, data: bytes) -> bytes:
        if not data:
            return b""
        if len(data) < NONCE_SIZE + TAG_SIZE:
            raise DecryptionError("Ciphertext too short")
        nonce, sealed = data[:NONCE_SIZE], data[NONCE_SIZE:]
        try:
            return self._aesgcm.decrypt(nonce, sealed, None)
        except InvalidTag as e:
            logger.warning("Credential failed authentication on decrypt")
            raise DecryptionError("Authentication failed; ciphertext was tampered with or the key is wrong") from e

    def encrypt(self, plaintext: str) -> str:
        if not plaintext:
            return ""
        return base64.b64encode(self.encrypt_bytes(plaintext.encode("utf-8"))).decode("ascii")

    def decrypt(self, token: str) -> str:
        if not token:
            return ""
        try:
            raw = base64.b64decode(token, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError("Ciphertext is not valid base64") from e
        if base64.b64encode(raw).decode("ascii") != token:
            raise DecryptionError("Ciphertext is not canonical base64")
        plaintext = self.decrypt_bytes(raw)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted value is not UTF-8 text") from e
