"""
Generic property access for the field processor.

The processor never touches attributes directly. It reads through ``get``
and writes through one of two calls:

- ``set``: a freshly computed value the persistence engine must write
- ``restore``: a value mirroring what storage already holds (decrypted
  plaintext, or ciphertext restored from the decryption cache)

Plain objects make no distinction between the two. The SQLAlchemy binding
(``fieldvault.infra.orm_events.ORMAccessor``) uses ``restore`` to update
the committed state so that no spurious change is recorded.
"""

from __future__ import annotations

from typing import Any, Protocol

from fieldvault.lib.exceptions import PropertyAccessError


class PropertyAccessor(Protocol):
    """Read/write named properties of arbitrary objects."""

    def get(self, obj: Any, name: str) -> Any: ...

    def set(self, obj: Any, name: str, value: Any) -> None: ...

    def restore(self, obj: Any, name: str, value: Any) -> None: ...


class AttributeAccessor:
    """Accessor backed by ``getattr``/``setattr``.

    Works for underscore-prefixed attributes too. A declared property the
    object does not expose raises ``PropertyAccessError``.
    """

    def get(self, obj: Any, name: str) -> Any:
        try:
            return getattr(obj, name)
        except AttributeError as e:
            raise PropertyAccessError(
                f"{type(obj).__qualname__} does not expose property '{name}'"
            ) from e

    def set(self, obj: Any, name: str, value: Any) -> None:
        try:
            setattr(obj, name, value)
        except AttributeError as e:
            raise PropertyAccessError(
                f"Cannot write property '{name}' on {type(obj).__qualname__}"
            ) from e

    def restore(self, obj: Any, name: str, value: Any) -> None:
        self.set(obj, name, value)


__all__ = ["PropertyAccessor", "AttributeAccessor"]
