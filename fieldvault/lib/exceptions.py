"""
Custom exception hierarchy for fieldvault.

Provides structured exception types for the field encryption engine:
- Configuration and cipher backend failures
- Property registration and property access failures

All exceptions inherit from FieldVaultException, enabling
catch-all for library errors while keeping the ability to
catch specific error types.
"""

from __future__ import annotations


class FieldVaultException(Exception):
    """Base exception for all fieldvault errors."""


class ConfigurationError(FieldVaultException):
    """Invalid settings, unknown encryptor class, or unreadable secret key."""


class EncryptionError(FieldVaultException):
    """Encryption failures raised by a cipher backend."""


class DecryptionError(EncryptionError):
    """Malformed or tampered ciphertext, or a ciphertext sealed with another key."""


class RegistrationError(FieldVaultException):
    """Invalid property declarations (conflicting flags, non-class targets)."""


class PropertyAccessError(FieldVaultException):
    """A registered property is not exposed by the object being processed."""


__all__ = [
    "FieldVaultException",
    "ConfigurationError",
    "EncryptionError",
    "DecryptionError",
    "RegistrationError",
    "PropertyAccessError",
]
