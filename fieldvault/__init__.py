"""
fieldvault -- transparent field-level encryption for persistent objects.

Encrypts registered properties before they reach storage and decrypts them
after load, driven by persistence lifecycle events.

Usage:
    from fieldvault import EncryptSubscriber, PropertyRegistry
    from fieldvault.lib.encryption import AES256GCMEncryptor
"""

from fieldvault.core import (
    EncryptSubscriber,
    FieldProcessor,
    ProcessMode,
    PropertyRegistry,
    encrypted,
)
from fieldvault.version import __version__

__all__ = [
    "EncryptSubscriber",
    "FieldProcessor",
    "ProcessMode",
    "PropertyRegistry",
    "encrypted",
    "__version__",
]
