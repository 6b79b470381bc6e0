"""
Field Processor for fieldvault.

Walks the registered properties of an object (inherited and embedded ones
included) and encrypts or decrypts them in place.

Decrypt rule:
    A non-empty marked value is decrypted, the plaintext is restored into
    the property, and (type, identity, property, plaintext) -> original
    ciphertext is recorded in the decryption cache.

Encrypt rule:
    1. Cache hit for the current value: restore the cached ciphertext
       (no cipher call, no counter increment).
    2. Unmarked value: encrypt, append the marker, write it back.
    3. Marked value without cache hit: leave it, it is already ciphertext.

Empty values (None, "") are never passed to the cipher. Non-string values
are raw data the processor does not manage.

Usage:
    processor = FieldProcessor(registry, encryptor)
    processor.process_fields(account, ProcessMode.ENCRYPT)
    processor.decrypt(account)
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, TypeVar

from fieldvault.core import marker
from fieldvault.core.accessor import AttributeAccessor, PropertyAccessor
from fieldvault.core.cache import DecryptionCache
from fieldvault.core.registry import PropertyRegistry, type_name
from fieldvault.lib.encryption import Encryptor

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProcessMode(Enum):
    """Direction of a processing pass."""

    ENCRYPT = "encrypt"
    DECRYPT = "decrypt"


class FieldProcessor:
    """
    Applies encrypt/decrypt semantics to the marked properties of objects.

    Counters ``encrypt_counter`` and ``decrypt_counter`` grow by exactly the
    number of values transformed by the cipher; skips, cache restores and
    no-ops do not count.

    With no encryptor configured every call is a passthrough.

    Not safe for concurrent use: the cache and counters are plain mutable
    state owned by this instance.

    Args:
        registry: Property declarations to walk.
        encryptor: Cipher backend, or None for passthrough.
        cache: Decryption cache to read and fill. A new one if omitted.
        accessor: Property accessor. ``AttributeAccessor`` if omitted.
    """

    def __init__(
        self,
        registry: PropertyRegistry,
        encryptor: Encryptor | None = None,
        cache: DecryptionCache | None = None,
        accessor: PropertyAccessor | None = None,
    ) -> None:
        self.registry = registry
        self.cache = cache if cache is not None else DecryptionCache()
        self.accessor: PropertyAccessor = accessor if accessor is not None else AttributeAccessor()
        self._encryptor = encryptor
        self._initial_encryptor = encryptor
        self.encrypt_counter = 0
        self.decrypt_counter = 0

    # ------------------------------------------------------------------
    # Encryptor management
    # ------------------------------------------------------------------

    @property
    def encryptor(self) -> Encryptor | None:
        """The encryptor currently in use."""
        return self._encryptor

    def set_encryptor(self, encryptor: Encryptor | None) -> None:
        """Swap the encryptor. None switches to passthrough."""
        self._encryptor = encryptor

    def restore_encryptor(self) -> None:
        """Go back to the encryptor given at construction."""
        self._encryptor = self._initial_encryptor

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process_fields(self, obj: T, mode: ProcessMode) -> T:
        """
        Encrypt or decrypt every marked property of ``obj`` in place.

        Args:
            obj: The object to process.
            mode: ProcessMode.ENCRYPT or ProcessMode.DECRYPT.

        Returns:
            The same object.

        Raises:
            EncryptionError: Propagated from the cipher backend.
            PropertyAccessError: A registered property is not exposed.
        """
        if self._encryptor is None:
            return obj

        self._walk(obj, mode, set())
        return obj

    def encrypt(self, obj: T) -> T:
        """Shortcut for ``process_fields(obj, ProcessMode.ENCRYPT)``."""
        return self.process_fields(obj, ProcessMode.ENCRYPT)

    def decrypt(self, obj: T) -> T:
        """Shortcut for ``process_fields(obj, ProcessMode.DECRYPT)``."""
        return self.process_fields(obj, ProcessMode.DECRYPT)

    def _walk(self, obj: Any, mode: ProcessMode, visited: set[int]) -> None:
        # Embedded graphs may point back at an ancestor
        if id(obj) in visited:
            return
        visited.add(id(obj))

        for descriptor in self.registry.descriptors_for(type(obj)):
            if descriptor.is_embedded:
                embedded = self.accessor.get(obj, descriptor.name)
                if embedded is not None:
                    self._walk(embedded, mode, visited)
                continue

            if not descriptor.is_encrypted:
                continue

            if mode is ProcessMode.DECRYPT:
                self._decrypt_property(obj, descriptor.name)
            else:
                self._encrypt_property(obj, descriptor.name)

    def _decrypt_property(self, obj: Any, name: str) -> None:
        value = self.accessor.get(obj, name)
        if not value or not marker.is_marked(value):
            return

        plaintext = self._encryptor.decrypt(marker.decode(value))  # type: ignore[union-attr]
        self.accessor.restore(obj, name, plaintext)
        self.decrypt_counter += 1
        self.cache.store(obj, name, plaintext, value)

    def _encrypt_property(self, obj: Any, name: str) -> None:
        value = self.accessor.get(obj, name)
        if not value:
            return
        if not isinstance(value, str):
            logger.debug(
                "Skipping non-string value in %s.%s", type_name(type(obj)), name
            )
            return

        cached = self.cache.lookup(obj, name, value)
        if cached is not None:
            self.accessor.restore(obj, name, cached)
            return

        if marker.is_marked(value):
            return

        ciphertext = marker.encode(self._encryptor.encrypt(value))  # type: ignore[union-attr]
        self.accessor.set(obj, name, ciphertext)
        self.encrypt_counter += 1


__all__ = ["ProcessMode", "FieldProcessor"]
