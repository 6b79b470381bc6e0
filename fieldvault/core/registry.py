"""
Property Marker Registry for fieldvault.

Declares which properties of a persistent class are encrypted and which hold
embedded objects that must be traversed recursively. Declarations are
explicit (no introspection of annotations at processing time):

    registry = PropertyRegistry()
    registry.register(Account, encrypted=["secret"], embedded=["address"])

or, with the module-level default registry:

    @encrypted("secret", embedded=("address",))
    class Account(Base):
        ...

Inheritance: ``descriptors_for(cls)`` returns the union of the declarations
made on ``cls`` and all of its ancestors, ancestor declarations first. A
subclass that redeclares a name overrides the ancestor's flags for it while
keeping the ancestor's position. The flattened table is computed once per
class and cached until the next registration.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Flag, auto
from typing import Any, TypeVar

from fieldvault.lib.exceptions import RegistrationError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=type)


class PropertyFlag(Flag):
    """Marker flags attached to a declared property."""

    NONE = 0
    ENCRYPTED = auto()
    EMBEDDED = auto()


@dataclass(frozen=True)
class PropertyDescriptor:
    """
    A declared property of a persistent class.

    Attributes:
        name: Attribute name on the instance (may be underscore-prefixed).
        declaring_type: The class the declaration was made on.
        flags: ENCRYPTED, EMBEDDED, or NONE (an override that unmarks an
            inherited declaration).
    """

    name: str
    declaring_type: type
    flags: PropertyFlag

    @property
    def is_encrypted(self) -> bool:
        return PropertyFlag.ENCRYPTED in self.flags

    @property
    def is_embedded(self) -> bool:
        return PropertyFlag.EMBEDDED in self.flags


def type_name(cls: type) -> str:
    """Stable name of a runtime class, used as the cache and identity-map key."""
    return f"{cls.__module__}.{cls.__qualname__}"


class PropertyRegistry:
    """Per-class property declarations with flattened, cached lookups.

    - _declared: class -> {property name -> descriptor}, in declaration order
    - _flattened: class -> merged descriptors across the MRO (lazy cache)

    Example:
        registry = PropertyRegistry()
        registry.register(User, encrypted=["email", "_phone"])
        registry.register(Customer, embedded=["billing_address"])
        registry.register(Address, encrypted=["street"])

        for descriptor in registry.descriptors_for(Customer):
            ...
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._declared: dict[type, dict[str, PropertyDescriptor]] = {}
        self._flattened: dict[type, tuple[PropertyDescriptor, ...]] = {}

    def declare(self, cls: type, name: str, flags: PropertyFlag) -> PropertyDescriptor:
        """Declare a single property on ``cls``.

        Redeclaring a name on the same class replaces the earlier flags.

        Args:
            cls: The class declaring the property
            name: Attribute name
            flags: Marker flags for the property

        Returns:
            The stored descriptor

        Raises:
            RegistrationError: If cls is not a class, the name is empty, or
                the property is flagged both ENCRYPTED and EMBEDDED
        """
        if not isinstance(cls, type):
            raise RegistrationError(f"Expected a class, got {cls!r}")
        if not name:
            raise RegistrationError(f"Empty property name declared on {type_name(cls)}")
        if PropertyFlag.ENCRYPTED in flags and PropertyFlag.EMBEDDED in flags:
            raise RegistrationError(
                f"Property '{name}' on {type_name(cls)} cannot be both "
                f"encrypted and embedded"
            )

        descriptor = PropertyDescriptor(name=name, declaring_type=cls, flags=flags)
        self._declared.setdefault(cls, {})[name] = descriptor
        # Any subclass table may include this class, drop them all
        self._flattened.clear()
        return descriptor

    def register(
        self,
        cls: type,
        encrypted: Iterable[str] = (),
        embedded: Iterable[str] = (),
        plain: Iterable[str] = (),
    ) -> None:
        """Register the encrypted and embedded properties of a class.

        Args:
            cls: The class to register
            encrypted: Names of properties stored encrypted
            embedded: Names of properties holding sub-objects to traverse
            plain: Names that override an inherited declaration and are no
                longer processed

        Raises:
            RegistrationError: If the same name appears in more than one group
        """
        encrypted = list(encrypted)
        embedded = list(embedded)
        plain = list(plain)

        overlap = (set(encrypted) & set(embedded)) | (
            set(plain) & (set(encrypted) | set(embedded))
        )
        if overlap:
            raise RegistrationError(
                f"Properties {sorted(overlap)} on {type_name(cls)} are declared "
                f"with conflicting markers"
            )

        for name in encrypted:
            self.declare(cls, name, PropertyFlag.ENCRYPTED)
        for name in embedded:
            self.declare(cls, name, PropertyFlag.EMBEDDED)
        for name in plain:
            self.declare(cls, name, PropertyFlag.NONE)

        logger.debug(
            "Registered %s: %d encrypted, %d embedded, %d plain",
            type_name(cls), len(encrypted), len(embedded), len(plain),
        )

    def descriptors_for(self, cls: type) -> tuple[PropertyDescriptor, ...]:
        """Return the flattened descriptors of ``cls``, ancestors first.

        Args:
            cls: The exact runtime class of an object

        Returns:
            Tuple of descriptors (empty if nothing in the MRO is registered)
        """
        cached = self._flattened.get(cls)
        if cached is not None:
            return cached

        merged: dict[str, PropertyDescriptor] = {}
        for klass in reversed(cls.__mro__):
            declared = self._declared.get(klass)
            if declared:
                # dict.update keeps the ancestor position, takes the child value
                merged.update(declared)

        flattened = tuple(merged.values())
        self._flattened[cls] = flattened
        return flattened

    def is_managed(self, cls: type) -> bool:
        """Whether instances of ``cls`` have any encrypted or embedded property."""
        return any(d.flags != PropertyFlag.NONE for d in self.descriptors_for(cls))

    def registered_types(self) -> list[type]:
        """List the classes that carry their own declarations."""
        return list(self._declared.keys())

    def clear(self) -> None:
        """Drop every declaration."""
        self._declared.clear()
        self._flattened.clear()

    def __contains__(self, cls: object) -> bool:
        return isinstance(cls, type) and self.is_managed(cls)


# Global registry instance (used by the ``encrypted`` class decorator)
_default_registry: PropertyRegistry | None = None


def get_registry() -> PropertyRegistry:
    """Get the global property registry."""
    global _default_registry
    if _default_registry is None:
        _default_registry = PropertyRegistry()
    return _default_registry


def encrypted(
    *names: str,
    embedded: Iterable[str] = (),
    registry: PropertyRegistry | None = None,
) -> Callable[[T], T]:
    """
    Class decorator declaring encrypted and embedded properties.

    Args:
        *names: Encrypted property names
        embedded: Embedded property names
        registry: Target registry (defaults to the global registry)

    Example:
        @encrypted("iban", "_pin", embedded=("address",))
        class Card(Base):
            ...
    """
    def decorator(cls: T) -> T:
        (registry or get_registry()).register(cls, encrypted=names, embedded=embedded)
        return cls

    return decorator


def describe(registry: PropertyRegistry, cls: type) -> dict[str, Any]:
    """Summarize the flattened declarations of a class (for diagnostics)."""
    descriptors = registry.descriptors_for(cls)
    return {
        "type": type_name(cls),
        "encrypted": [d.name for d in descriptors if d.is_encrypted],
        "embedded": [d.name for d in descriptors if d.is_embedded],
    }


__all__ = [
    "PropertyFlag",
    "PropertyDescriptor",
    "PropertyRegistry",
    "type_name",
    "get_registry",
    "encrypted",
    "describe",
]
