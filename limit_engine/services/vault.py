"""
Secret Vault - AES-256-GCM encryption for wallet private keys at rest.

One process-wide key is derived from ``settings.encryption_key`` when the
vault is built and never leaves this object. Callers that need the
plaintext for signing go through ``unlocked()`` so the key only lives for
the duration of the ``with`` block.

Storage format: base64(nonce (12 bytes) || ciphertext || tag (16 bytes))
"""
from __future__ import annotations

import base64
import logging
import secrets
from contextlib import contextmanager
from typing import Iterator

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from limit_engine.core.errors import VaultError

logger = logging.getLogger(__name__)

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16


class SecretVault:
    def __init__(self, encryption_key: str, salt: str) -> None:
        if not encryption_key or len(encryption_key) < 16:
            raise ValueError("encryption key must be at least 16 characters")

        kdf = Scrypt(salt=salt.encode("utf-8"), length=KEY_SIZE, n=2**14, r=8, p=1)
        self._cipher = AESGCM(kdf.derive(encryption_key.encode("utf-8")))
        logger.info("Secret vault initialized")

    def encrypt(self, plaintext: str) -> str:
        if not plaintext:
            raise VaultError("Cannot encrypt empty secret")

        nonce = secrets.token_bytes(NONCE_SIZE)
        ciphertext = self._cipher.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + ciphertext).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        if not ciphertext:
            raise VaultError("Cannot decrypt empty data")

        try:
            raw = base64.b64decode(ciphertext, validate=True)
        except ValueError as e:
            raise VaultError("Ciphertext is not valid base64") from e

        if len(raw) < NONCE_SIZE + TAG_SIZE:
            raise VaultError("Ciphertext too short")

        try:
            plaintext = self._cipher.decrypt(raw[:NONCE_SIZE], raw[NONCE_SIZE:], None)
        except InvalidTag as e:
            # wrong key or tampered data; do not echo the ciphertext
            raise VaultError("Failed to decrypt secret") from e
        return plaintext.decode("utf-8")

    @contextmanager
    def unlocked(self, ciphertext: str) -> Iterator[str]:
        """Yield the plaintext for one signing operation."""
        plaintext = self.decrypt(ciphertext)
        try:
            yield plaintext
        finally:
            del plaintext
