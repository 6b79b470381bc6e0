"""
Lifecycle Orchestrator for fieldvault.

Binds the field processor to the lifecycle of a persistence engine:

| Event        | Handler        | Action                                          |
|--------------|----------------|-------------------------------------------------|
| after-load   | post_load      | decrypt the loaded object                       |
| before-update| pre_update     | encrypt the object about to be written          |
| after-update | post_update    | decrypt it again for the application            |
| before-flush | pre_flush      | encrypt identity-map objects of cached types,   |
|              |                | then clear the decryption cache                 |
| during-flush | on_flush       | encrypt scheduled inserts, recompute changes    |
| after-flush  | post_flush     | decrypt everything in the identity map          |

The engine is reached through the ``UnitOfWork`` protocol. The SQLAlchemy
implementation lives in ``fieldvault.infra.orm_events``.

One subscriber owns one decryption cache and one pair of counters. It is
not safe for concurrent use: give each unit of work (session) its own.
Cipher errors propagate and abort the lifecycle operation in progress.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any, Protocol

import structlog

from fieldvault.core.accessor import PropertyAccessor
from fieldvault.core.cache import DecryptionCache
from fieldvault.core.processor import FieldProcessor, ProcessMode
from fieldvault.core.registry import PropertyRegistry
from fieldvault.lib.encryption import Encryptor

logger = structlog.get_logger(__name__)


class LifecycleEvent(Enum):
    """Persistence lifecycle events handled by the subscriber."""

    POST_LOAD = "post_load"
    PRE_UPDATE = "pre_update"
    POST_UPDATE = "post_update"
    PRE_FLUSH = "pre_flush"
    ON_FLUSH = "on_flush"
    POST_FLUSH = "post_flush"


class UnitOfWork(Protocol):
    """What the subscriber needs from the persistence engine."""

    def identity_map(self) -> Mapping[str, Sequence[Any]]:
        """Live tracked instances grouped by runtime type name."""
        ...

    def scheduled_insertions(self) -> Sequence[Any]:
        """Instances that will be inserted by the running flush."""
        ...

    def class_metadata(self, cls: type) -> Any:
        """Engine metadata of a persistent class."""
        ...

    def recompute_change_set(self, metadata: Any, obj: Any) -> None:
        """Ask the engine to recompute the pending changes of ``obj``."""
        ...


class EncryptSubscriber:
    """
    Encrypts and decrypts persistent objects on lifecycle events.

    Args:
        registry: Property declarations.
        encryptor: Cipher backend. None makes every handler a passthrough.
        accessor: Property accessor handed to the processor.

    Example:
        subscriber = EncryptSubscriber(registry, AES256GCMEncryptor(key))
        subscriber.post_load(account, uow)    # account.secret is plaintext
        subscriber.pre_flush(uow)             # cached values re-sealed
    """

    def __init__(
        self,
        registry: PropertyRegistry,
        encryptor: Encryptor | None = None,
        accessor: PropertyAccessor | None = None,
    ) -> None:
        self.cache = DecryptionCache()
        self.processor = FieldProcessor(
            registry, encryptor=encryptor, cache=self.cache, accessor=accessor
        )

    @property
    def registry(self) -> PropertyRegistry:
        return self.processor.registry

    @property
    def encrypt_counter(self) -> int:
        return self.processor.encrypt_counter

    @property
    def decrypt_counter(self) -> int:
        return self.processor.decrypt_counter

    @property
    def encryptor(self) -> Encryptor | None:
        return self.processor.encryptor

    def set_encryptor(self, encryptor: Encryptor | None) -> None:
        """Swap the encryptor (None disables processing)."""
        self.processor.set_encryptor(encryptor)

    def restore_encryptor(self) -> None:
        """Return to the encryptor given at construction."""
        self.processor.restore_encryptor()

    @staticmethod
    def subscribed_events() -> tuple[LifecycleEvent, ...]:
        """All events this subscriber listens to."""
        return tuple(LifecycleEvent)

    def process_fields(self, obj: Any, mode: ProcessMode) -> Any:
        """Run the processor directly on one object."""
        return self.processor.process_fields(obj, mode)

    # ------------------------------------------------------------------
    # Per-object events
    # ------------------------------------------------------------------

    def post_load(self, obj: Any, uow: UnitOfWork | None = None) -> None:
        """Decrypt an object freshly loaded from storage."""
        self.processor.decrypt(obj)

    def pre_update(self, obj: Any, uow: UnitOfWork | None = None) -> None:
        """Encrypt an object about to be updated so storage gets ciphertext."""
        self.processor.encrypt(obj)

    def post_update(self, obj: Any, uow: UnitOfWork | None = None) -> None:
        """Decrypt an updated object so the application sees plaintext again."""
        self.processor.decrypt(obj)

    # ------------------------------------------------------------------
    # Flush events
    # ------------------------------------------------------------------

    def pre_flush(self, uow: UnitOfWork) -> None:
        """
        Re-seal objects decrypted during this cycle, then end the cycle.

        Only types with pending cache entries are swept. Unchanged values
        get their original ciphertext back from the cache; changed values
        are encrypted afresh. The cache is cleared unconditionally.
        """
        pending = self.cache.cached_types()
        swept = 0
        if pending:
            for name, instances in uow.identity_map().items():
                if name not in pending:
                    continue
                for obj in list(instances):
                    self.processor.encrypt(obj)
                    swept += 1

        self.cache.clear()
        logger.debug("pre_flush", swept=swept, cached_types=len(pending))

    def on_flush(self, uow: UnitOfWork) -> None:
        """
        Encrypt objects scheduled for insertion.

        When a value was actually encrypted the engine is asked to recompute
        the object's change set so the INSERT carries ciphertext.
        """
        recomputed = 0
        for obj in list(uow.scheduled_insertions()):
            before = self.processor.encrypt_counter
            self.processor.encrypt(obj)
            if self.processor.encrypt_counter > before:
                metadata = uow.class_metadata(type(obj))
                uow.recompute_change_set(metadata, obj)
                recomputed += 1

        logger.debug("on_flush", recomputed=recomputed)

    def post_flush(self, uow: UnitOfWork) -> None:
        """Decrypt every tracked object after the flush wrote ciphertext."""
        for instances in uow.identity_map().values():
            for obj in list(instances):
                self.processor.decrypt(obj)


__all__ = ["LifecycleEvent", "UnitOfWork", "EncryptSubscriber"]
