"""
Core field processing engine.

Usage:
    from fieldvault.core import EncryptSubscriber, FieldProcessor, ProcessMode, PropertyRegistry
"""

from fieldvault.core.accessor import AttributeAccessor, PropertyAccessor
from fieldvault.core.cache import DecryptionCache
from fieldvault.core.marker import MARKER, decode, encode, is_marked
from fieldvault.core.processor import FieldProcessor, ProcessMode
from fieldvault.core.registry import (
    PropertyDescriptor,
    PropertyFlag,
    PropertyRegistry,
    encrypted,
    get_registry,
    type_name,
)
from fieldvault.core.subscriber import EncryptSubscriber, LifecycleEvent, UnitOfWork

__all__ = [
    # Marker protocol
    "MARKER",
    "is_marked",
    "encode",
    "decode",
    # Registry
    "PropertyFlag",
    "PropertyDescriptor",
    "PropertyRegistry",
    "encrypted",
    "get_registry",
    "type_name",
    # Processing
    "PropertyAccessor",
    "AttributeAccessor",
    "DecryptionCache",
    "FieldProcessor",
    "ProcessMode",
    # Lifecycle
    "EncryptSubscriber",
    "LifecycleEvent",
    "UnitOfWork",
]
