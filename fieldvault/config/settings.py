"""
Encryption settings for fieldvault.

Selects the cipher backend and where its 32-byte key comes from.

Environment variables (``EncryptionSettings.from_env``):
    FIELDVAULT_ENCRYPTOR    short name ("aesgcm", "chacha20") or dotted path
                            of an Encryptor class. Default: aesgcm
    FIELDVAULT_SECRET_KEY   base64-encoded 32-byte key
    FIELDVAULT_SECRET_DIR   directory holding ``.<encryptor>.key`` when no
                            inline key is set

Security Note:
    Never log key material. Only the key source (inline or file path) is logged.
"""

from __future__ import annotations

import base64
import binascii
import importlib
import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

from fieldvault.lib.encryption import SUPPORTED_ENCRYPTORS, AEADEncryptor, Encryptor
from fieldvault.lib.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class EncryptionSettings(BaseModel):
    """Validated encryption configuration."""

    encryptor_class: str = Field(default="aesgcm")
    secret_key: str | None = Field(default=None, repr=False)
    secret_directory_path: str | None = None

    @field_validator("encryptor_class")
    @classmethod
    def validate_encryptor_class(cls, v: str) -> str:
        """Accept a supported short name or a dotted class path."""
        v = v.strip()
        if v.lower() in SUPPORTED_ENCRYPTORS:
            return v.lower()
        if "." not in v:
            raise ValueError(
                f"Unsupported encryptor '{v}' "
                f"(expected one of {sorted(SUPPORTED_ENCRYPTORS)} or a dotted class path)"
            )
        return v

    @model_validator(mode="after")
    def validate_key_source(self) -> EncryptionSettings:
        """Ensure there is somewhere to read the key from."""
        if not self.secret_key and not self.secret_directory_path:
            raise ValueError(
                "Either secret_key or secret_directory_path must be set"
            )
        return self

    @property
    def secret_key_path(self) -> Path | None:
        """Key file location: ``<secret_directory_path>/.<encryptor_class>.key``."""
        if not self.secret_directory_path:
            return None
        return Path(self.secret_directory_path) / f".{self.encryptor_class}.key"

    def load_secret_key(self) -> bytes:
        """
        Return the raw 32-byte key.

        The inline ``secret_key`` wins over the key file.

        Raises:
            ConfigurationError: If the key file is missing or unreadable, or
                the key is not base64 of exactly 32 bytes.
        """
        if self.secret_key:
            encoded = self.secret_key
            source = "inline"
        else:
            path = self.secret_key_path
            try:
                encoded = path.read_text(encoding="ascii").strip()  # type: ignore[union-attr]
            except OSError as e:
                raise ConfigurationError(f"Cannot read secret key file {path}") from e
            source = str(path)

        try:
            key = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ConfigurationError(f"Secret key ({source}) is not valid base64") from e

        if len(key) != AEADEncryptor.KEY_SIZE:
            raise ConfigurationError(
                f"Secret key ({source}) must decode to exactly "
                f"{AEADEncryptor.KEY_SIZE} bytes, got {len(key)}"
            )
        logger.debug("Loaded secret key from %s", source)
        return key

    @classmethod
    def from_env(cls) -> EncryptionSettings:
        """Create settings from ``FIELDVAULT_*`` environment variables."""
        return cls(
            encryptor_class=os.environ.get("FIELDVAULT_ENCRYPTOR", "aesgcm"),
            secret_key=os.environ.get("FIELDVAULT_SECRET_KEY") or None,
            secret_directory_path=os.environ.get("FIELDVAULT_SECRET_DIR") or None,
        )


def resolve_encryptor_class(name: str) -> type:
    """
    Map a short name or dotted path to an encryptor class.

    Raises:
        ConfigurationError: If the path cannot be imported or does not name a class.
    """
    if name in SUPPORTED_ENCRYPTORS:
        return SUPPORTED_ENCRYPTORS[name]

    module_name, _, attr = name.rpartition(".")
    try:
        module = importlib.import_module(module_name)
        resolved = getattr(module, attr)
    except (ImportError, AttributeError, ValueError) as e:
        raise ConfigurationError(f"Cannot import encryptor class '{name}'") from e

    if not isinstance(resolved, type):
        raise ConfigurationError(f"'{name}' is not a class")
    return resolved


def build_encryptor(settings: EncryptionSettings) -> Encryptor:
    """Instantiate the configured encryptor with its key."""
    encryptor_cls = resolve_encryptor_class(settings.encryptor_class)
    encryptor = encryptor_cls(settings.load_secret_key())
    if not isinstance(encryptor, Encryptor):
        raise ConfigurationError(
            f"{settings.encryptor_class} does not implement encrypt/decrypt"
        )
    logger.info("Using encryptor %s", encryptor_cls.__name__)
    return encryptor


__all__ = [
    "EncryptionSettings",
    "resolve_encryptor_class",
    "build_encryptor",
]
