"""Configuration for fieldvault."""

from fieldvault.config.settings import EncryptionSettings, build_encryptor, resolve_encryptor_class

__all__ = ["EncryptionSettings", "build_encryptor", "resolve_encryptor_class"]
