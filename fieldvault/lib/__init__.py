"""
Lib package for fieldvault.

Contains shared utilities:
- encryption.py: Cipher backends (AES-256-GCM, ChaCha20-Poly1305)
- exceptions.py: Exception hierarchy
- logging.py: structlog configuration
"""

from fieldvault.lib.encryption import (
    AEADEncryptor,
    AES256GCMEncryptor,
    ChaCha20Poly1305Encryptor,
    Encryptor,
    SUPPORTED_ENCRYPTORS,
    generate_secret_key,
)
from fieldvault.lib.exceptions import (
    ConfigurationError,
    DecryptionError,
    EncryptionError,
    FieldVaultException,
    PropertyAccessError,
    RegistrationError,
)

__all__ = [
    # Encryption
    "Encryptor",
    "AEADEncryptor",
    "AES256GCMEncryptor",
    "ChaCha20Poly1305Encryptor",
    "SUPPORTED_ENCRYPTORS",
    "generate_secret_key",
    # Exceptions
    "FieldVaultException",
    "ConfigurationError",
    "EncryptionError",
    "DecryptionError",
    "RegistrationError",
    "PropertyAccessError",
]
