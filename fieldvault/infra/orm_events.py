"""
SQLAlchemy binding for fieldvault.

Wires an ``EncryptSubscriber`` into the lifecycle of one ORM session:

- ``Mapper`` instance events ``load`` / ``refresh``  -> post_load
- ``Mapper`` events ``before_update`` / ``after_update`` -> pre_update / post_update
- session ``before_flush``         -> pre_flush, then on_flush
- session ``after_flush_postexec`` -> post_flush

The mapper hooks are installed globally once and look the subscriber up in
``session.info``, so each session carries its own subscriber (and its own
decryption cache). Sessions without a subscriber are left alone.

Usage:
    from fieldvault.infra.orm_events import ENCRYPTED_INFO, register_all, subscribe

    class Account(Base):
        __tablename__ = "accounts"
        id: Mapped[int] = mapped_column(primary_key=True)
        secret: Mapped[str | None] = mapped_column(Text, info=ENCRYPTED_INFO)

    registry = PropertyRegistry()
    register_all(registry, Base)

    session = Session(engine)
    subscribe(session, registry, AES256GCMEncryptor(key))
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy import event, inspect
from sqlalchemy.orm import Mapper, Session, object_session
from sqlalchemy.orm.attributes import flag_modified, set_committed_value

from fieldvault.core.accessor import AttributeAccessor
from fieldvault.core.registry import PropertyRegistry, describe, type_name
from fieldvault.core.subscriber import EncryptSubscriber
from fieldvault.lib.encryption import Encryptor

logger = logging.getLogger(__name__)

SUBSCRIBER_KEY = "fieldvault.subscriber"

# Column ``info`` marker picked up by register_mapped()
ENCRYPTED_INFO: dict[str, Any] = {"encrypted": True}


# =============================================================================
# Property access
# =============================================================================

class ORMAccessor(AttributeAccessor):
    """
    Accessor aware of SQLAlchemy attribute history.

    ``restore`` writes mapped column attributes with ``set_committed_value``:
    decrypted plaintext and cache-restored ciphertext describe what the
    database already holds, so they must not show up as pending changes.
    Freshly computed ciphertext goes through ``set`` and is flushed normally.
    """

    def restore(self, obj: Any, name: str, value: Any) -> None:
        state = inspect(obj, raiseerr=False)
        if state is not None and name in state.mapper.column_attrs:
            set_committed_value(obj, name, value)
        else:
            self.set(obj, name, value)


# =============================================================================
# Unit of work
# =============================================================================

class SessionUnitOfWork:
    """``UnitOfWork`` over a SQLAlchemy session."""

    def __init__(self, session: Session, registry: PropertyRegistry) -> None:
        self.session = session
        self.registry = registry

    def identity_map(self) -> dict[str, list[Any]]:
        grouped: dict[str, list[Any]] = {}
        for obj in list(self.session.identity_map.values()):
            grouped.setdefault(type_name(type(obj)), []).append(obj)
        return grouped

    def scheduled_insertions(self) -> Sequence[Any]:
        return list(self.session.new)

    def class_metadata(self, cls: type) -> Mapper[Any]:
        return inspect(cls)

    def recompute_change_set(self, metadata: Mapper[Any], obj: Any) -> None:
        """Flag the encrypted columns of ``obj`` so the flush writes them."""
        state = inspect(obj)
        for descriptor in self.registry.descriptors_for(type(obj)):
            if (
                descriptor.is_encrypted
                and descriptor.name in metadata.column_attrs
                and descriptor.name in state.dict
            ):
                flag_modified(obj, descriptor.name)


# =============================================================================
# Event handlers
# =============================================================================

def _subscriber_for(session: Session | None) -> EncryptSubscriber | None:
    if session is None:
        return None
    return session.info.get(SUBSCRIBER_KEY)


def _on_load(target: Any, context: Any) -> None:
    session = context.session
    subscriber = _subscriber_for(session)
    if subscriber is not None:
        subscriber.post_load(target, SessionUnitOfWork(session, subscriber.registry))


def _on_refresh(target: Any, context: Any, attrs: Any) -> None:
    _on_load(target, context)


def _before_update(mapper: Mapper[Any], connection: Any, target: Any) -> None:
    session = object_session(target)
    subscriber = _subscriber_for(session)
    if subscriber is not None:
        subscriber.pre_update(target, SessionUnitOfWork(session, subscriber.registry))


def _after_update(mapper: Mapper[Any], connection: Any, target: Any) -> None:
    session = object_session(target)
    subscriber = _subscriber_for(session)
    if subscriber is not None:
        subscriber.post_update(target, SessionUnitOfWork(session, subscriber.registry))


def _before_flush(session: Session, flush_context: Any, instances: Any) -> None:
    subscriber = _subscriber_for(session)
    if subscriber is None:
        return
    uow = SessionUnitOfWork(session, subscriber.registry)
    subscriber.pre_flush(uow)
    subscriber.on_flush(uow)


def _after_flush_postexec(session: Session, flush_context: Any) -> None:
    subscriber = _subscriber_for(session)
    if subscriber is not None:
        subscriber.post_flush(SessionUnitOfWork(session, subscriber.registry))


_MAPPER_HOOKS = (
    ("load", _on_load),
    ("refresh", _on_refresh),
    ("before_update", _before_update),
    ("after_update", _after_update),
)

_SESSION_HOOKS = (
    ("before_flush", _before_flush),
    ("after_flush_postexec", _after_flush_postexec),
)


def install_mapper_hooks() -> None:
    """Install the global mapper hooks (idempotent)."""
    for name, handler in _MAPPER_HOOKS:
        if not event.contains(Mapper, name, handler):
            event.listen(Mapper, name, handler)


def remove_mapper_hooks() -> None:
    """Remove the global mapper hooks."""
    for name, handler in _MAPPER_HOOKS:
        if event.contains(Mapper, name, handler):
            event.remove(Mapper, name, handler)


# =============================================================================
# Session binding
# =============================================================================

def attach(session: Session, subscriber: EncryptSubscriber) -> Session:
    """
    Bind a subscriber to a session.

    Replaces a subscriber already bound to the session.

    Args:
        session: The ORM session (one unit of work)
        subscriber: Subscriber owned by this session only

    Returns:
        The same session
    """
    install_mapper_hooks()
    session.info[SUBSCRIBER_KEY] = subscriber
    for name, handler in _SESSION_HOOKS:
        if not event.contains(session, name, handler):
            event.listen(session, name, handler)
    return session


def detach(session: Session) -> EncryptSubscriber | None:
    """Unbind and return the subscriber of a session, if any."""
    for name, handler in _SESSION_HOOKS:
        if event.contains(session, name, handler):
            event.remove(session, name, handler)
    return session.info.pop(SUBSCRIBER_KEY, None)


def subscribe(
    session: Session,
    registry: PropertyRegistry,
    encryptor: Encryptor | None,
) -> EncryptSubscriber:
    """Create a subscriber with an ``ORMAccessor`` and attach it to ``session``."""
    subscriber = EncryptSubscriber(registry, encryptor=encryptor, accessor=ORMAccessor())
    attach(session, subscriber)
    return subscriber


# =============================================================================
# Declarations from mapping metadata
# =============================================================================

def _is_encrypted_column(prop: Any) -> bool:
    if prop.info.get("encrypted"):
        return True
    return any(column.info.get("encrypted") for column in prop.columns)


def register_mapped(registry: PropertyRegistry, cls: type) -> None:
    """
    Declare the encrypted column attributes of a mapped class.

    A column attribute is encrypted when its ``info`` (or the info of the
    underlying ``Column``) has ``"encrypted": True``. Columns inherited from
    a mapped superclass are declared again on ``cls``; the registry merge
    keeps the ancestor ordering.
    """
    mapper = inspect(cls)
    names = [prop.key for prop in mapper.column_attrs if _is_encrypted_column(prop)]
    if names:
        registry.register(cls, encrypted=names)
        logger.debug("Registered mapped class %s", describe(registry, cls))


def register_all(registry: PropertyRegistry, base: Any) -> None:
    """Run ``register_mapped`` for every class mapped by a declarative base."""
    for mapper in base.registry.mappers:
        register_mapped(registry, mapper.class_)


__all__ = [
    "SUBSCRIBER_KEY",
    "ENCRYPTED_INFO",
    "ORMAccessor",
    "SessionUnitOfWork",
    "install_mapper_hooks",
    "remove_mapper_hooks",
    "attach",
    "detach",
    "subscribe",
    "register_mapped",
    "register_all",
]
