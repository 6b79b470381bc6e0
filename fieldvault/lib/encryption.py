"""
Cipher backends for fieldvault.

The field processor only needs a synchronous ``encrypt(str) -> str`` /
``decrypt(str) -> str`` pair. This module defines that contract and ships
two authenticated backends built on the ``cryptography`` package:

- AES-256-GCM (default, short name ``"aesgcm"``)
- ChaCha20-Poly1305 (short name ``"chacha20"``)

Both are non-deterministic: every call draws a fresh 96-bit nonce, so
encrypting the same plaintext twice yields different ciphertext. The
decryption cache in ``fieldvault.core.cache`` exists to neutralize that.

Ciphertext format (text, safe for any string column):
    base64( nonce[12] || ciphertext || tag[16] )

Usage:
    from fieldvault.lib.encryption import AES256GCMEncryptor

    encryptor = AES256GCMEncryptor(key)
    token = encryptor.encrypt("hunter2")
    encryptor.decrypt(token)  # "hunter2"

Security Note:
    Never log plaintext, ciphertext or key material.
"""

from __future__ import annotations

import base64
import binascii
import os
from typing import Protocol, runtime_checkable

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from fieldvault.lib.exceptions import ConfigurationError, DecryptionError, EncryptionError


@runtime_checkable
class Encryptor(Protocol):
    """Encrypt/decrypt strings to/from opaque strings."""

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext string to an opaque string."""
        ...

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt an opaque string back to plaintext."""
        ...


class AEADEncryptor:
    """
    Base class for AEAD backends from ``cryptography``.

    Subclasses set ``cipher_cls`` to an AEAD primitive taking a 32-byte key.

    Args:
        key: Raw 32-byte key.
        associated_data: Optional bytes bound to every ciphertext. Decrypting
            with different associated data fails.
    """

    cipher_cls: type = AESGCM

    KEY_SIZE = 32  # 256 bits
    NONCE_SIZE = 12  # 96 bits, recommended for GCM and ChaCha20-Poly1305
    TAG_SIZE = 16

    def __init__(self, key: bytes, associated_data: bytes | None = None) -> None:
        if not isinstance(key, bytes) or len(key) != self.KEY_SIZE:
            raise ConfigurationError(
                f"{type(self).__name__} requires a {self.KEY_SIZE}-byte key"
            )
        self._cipher = self.cipher_cls(key)
        self._associated_data = associated_data

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a string.

        Args:
            plaintext: Non-empty text to encrypt.

        Returns:
            Base64 text of nonce + ciphertext + tag.

        Raises:
            EncryptionError: If the value is not a string.
        """
        if not isinstance(plaintext, str):
            raise EncryptionError(
                f"Expected str plaintext, got {type(plaintext).__name__}"
            )
        nonce = os.urandom(self.NONCE_SIZE)
        sealed = self._cipher.encrypt(
            nonce, plaintext.encode("utf-8"), self._associated_data
        )
        return base64.b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a string produced by ``encrypt``.

        Raises:
            DecryptionError: If the input is not valid base64, is too short,
                fails authentication, or is not UTF-8 once opened.
        """
        try:
            raw = base64.b64decode(ciphertext, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            raise DecryptionError("Ciphertext is not valid base64") from e

        minimum = self.NONCE_SIZE + self.TAG_SIZE
        if len(raw) < minimum:
            raise DecryptionError(
                f"Ciphertext too short: {len(raw)} bytes (minimum {minimum})"
            )

        nonce, sealed = raw[: self.NONCE_SIZE], raw[self.NONCE_SIZE :]
        try:
            opened = self._cipher.decrypt(nonce, sealed, self._associated_data)
        except InvalidTag as e:
            raise DecryptionError(
                "Decryption failed: wrong key or tampered ciphertext"
            ) from e

        try:
            return opened.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted payload is not UTF-8 text") from e


class AES256GCMEncryptor(AEADEncryptor):
    """AES-256-GCM backend."""

    cipher_cls = AESGCM


class ChaCha20Poly1305Encryptor(AEADEncryptor):
    """ChaCha20-Poly1305 backend."""

    cipher_cls = ChaCha20Poly1305


# Short names accepted by EncryptionSettings.encryptor_class
SUPPORTED_ENCRYPTORS: dict[str, type[AEADEncryptor]] = {
    "aesgcm": AES256GCMEncryptor,
    "chacha20": ChaCha20Poly1305Encryptor,
}


def generate_secret_key() -> str:
    """
    Generate a random 32-byte key and return it base64-encoded.

    Operator utility for producing ``FIELDVAULT_SECRET_KEY`` values or key
    files. Storage and rotation are left to the deployment.
    """
    return base64.b64encode(os.urandom(AEADEncryptor.KEY_SIZE)).decode("ascii")


__all__ = [
    "Encryptor",
    "AEADEncryptor",
    "AES256GCMEncryptor",
    "ChaCha20Poly1305Encryptor",
    "SUPPORTED_ENCRYPTORS",
    "generate_secret_key",
]
