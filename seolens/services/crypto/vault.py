"""AES-256-GCM protection for tenant LLM credentials at rest.

Serialized form is ``hex(iv):hex(auth_tag):hex(ciphertext)`` with a 16-byte IV
and a 16-byte tag, matching what the dashboard's settings page has always
written to ``users.llm_api_key_encrypted``.
"""

from __future__ import annotations

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from seolens.core.errors import ConfigurationError, DecryptionError
from seolens.domain.query import EncryptedSecret
from seolens.services.crypto.utils import decode_hex


KEY_BYTES = 32
IV_BYTES = 16
TAG_BYTES = 16
# Placeholder older clients wrote instead of NULL.
_EMPTY_MARKERS = {"", "{}"}


class CredentialVault:
    def __init__(self, key: bytes) -> None:
        if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_BYTES:
            raise ConfigurationError("encryption key must be exactly 32 bytes")
        self._aesgcm = AESGCM(bytes(key))

    @classmethod
    def from_hex(cls, value: str | None) -> "CredentialVault":
        # Keep key material out of the error text.
        if not value or len(value.strip()) != KEY_BYTES * 2:
            raise ConfigurationError("ENCRYPTION_KEY must be set to 64 hex characters")
        try:
            key = decode_hex(value, expected_len=KEY_BYTES)
        except ValueError as exc:
            raise ConfigurationError("ENCRYPTION_KEY must be set to 64 hex characters") from exc
        return cls(key)

    def encrypt(self, plaintext: str) -> str:
        if not plaintext:
            raise ValueError("plaintext must be non-empty")
        iv = os.urandom(IV_BYTES)
        sealed = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        secret = EncryptedSecret(iv=iv, auth_tag=sealed[-TAG_BYTES:], ciphertext=sealed[:-TAG_BYTES])
        return secret.serialize()

    def decrypt(self, serialized: str | None) -> str:
        secret = self._parse(serialized)
        try:
            plaintext = self._aesgcm.decrypt(secret.iv, secret.ciphertext + secret.auth_tag, None)
        except InvalidTag as exc:
            raise DecryptionError("authentication tag mismatch") from exc
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptionError("decrypted value is not valid UTF-8") from exc

    @staticmethod
    def _parse(serialized: str | None) -> EncryptedSecret:
        if serialized is None or serialized.strip() in _EMPTY_MARKERS:
            raise DecryptionError("no encrypted value")
        parts = serialized.strip().split(":")
        if len(parts) != 3:
            raise DecryptionError(f"invalid encrypted format: expected 3 parts, got {len(parts)}")
        iv_hex, tag_hex, cipher_hex = parts
        try:
            iv = decode_hex(iv_hex, expected_len=IV_BYTES)
            tag = decode_hex(tag_hex, expected_len=TAG_BYTES)
            # GCM permits an empty ciphertext, but encrypt() never produces one.
            ciphertext = decode_hex(cipher_hex)
        except ValueError as exc:
            raise DecryptionError(f"invalid encrypted segment: {exc}") from exc
        return EncryptedSecret(iv=iv, auth_tag=tag, ciphertext=ciphertext)
