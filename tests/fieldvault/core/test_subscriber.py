"""
Unit tests for the lifecycle orchestrator.

The persistence engine is replaced by ``FakeUnitOfWork``; the SQLAlchemy
binding has its own tests under tests/fieldvault/infra.
"""

from unittest.mock import MagicMock

import pytest

from fieldvault.core.marker import MARKER, is_marked
from fieldvault.core.processor import ProcessMode
from fieldvault.core.registry import type_name
from fieldvault.core.subscriber import EncryptSubscriber, LifecycleEvent
from fieldvault.lib.exceptions import DecryptionError

# =============================================================================
# Fixtures
# =============================================================================

class Account:
    def __init__(self, secret=None, name=None):
        self.secret = secret
        self.name = name


class Note:
    def __init__(self, body=None):
        self.body = body


class FakeUnitOfWork:
    """In-memory stand-in for a persistence session."""

    def __init__(self, *tracked, inserts=()):
        self.tracked = list(tracked)
        self.inserts = list(inserts)
        self.recomputed = []

    def identity_map(self):
        grouped = {}
        for obj in self.tracked:
            grouped.setdefault(type_name(type(obj)), []).append(obj)
        return grouped

    def scheduled_insertions(self):
        return list(self.inserts)

    def class_metadata(self, cls):
        return f"metadata:{cls.__name__}"

    def recompute_change_set(self, metadata, obj):
        self.recomputed.append((metadata, obj))


@pytest.fixture()
def subscriber(registry, counting_encryptor):
    registry.register(Account, encrypted=["secret"])
    registry.register(Note, encrypted=["body"])
    return EncryptSubscriber(registry, encryptor=counting_encryptor)


def stored(subscriber, plaintext, cls=Account):
    """Ciphertext as it would come out of storage."""
    obj = cls(plaintext)
    subscriber.process_fields(obj, ProcessMode.ENCRYPT)
    return next(iter(vars(obj).values()))


# =============================================================================
# TestSubscription
# =============================================================================

class TestSubscription:
    """Test event subscription and encryptor management."""

    def test_subscribed_events(self):
        events = EncryptSubscriber.subscribed_events()
        assert set(events) == {
            LifecycleEvent.POST_LOAD,
            LifecycleEvent.PRE_UPDATE,
            LifecycleEvent.POST_UPDATE,
            LifecycleEvent.PRE_FLUSH,
            LifecycleEvent.ON_FLUSH,
            LifecycleEvent.POST_FLUSH,
        }

    def test_set_and_restore_encryptor(self, subscriber, counting_encryptor):
        subscriber.set_encryptor(None)
        assert subscriber.encryptor is None
        subscriber.restore_encryptor()
        assert subscriber.encryptor is counting_encryptor


# =============================================================================
# TestPerObjectEvents
# =============================================================================

class TestPerObjectEvents:
    """Test post_load, pre_update and post_update."""

    def test_post_load_decrypts_and_caches(self, subscriber):
        ciphertext = stored(subscriber, "hunter2")
        account = Account(ciphertext)

        subscriber.post_load(account, FakeUnitOfWork(account))

        assert account.secret == "hunter2"
        assert subscriber.cache.lookup(account, "secret", "hunter2") == ciphertext

    def test_pre_update_encrypts(self, subscriber):
        account = Account("hunter2")
        subscriber.pre_update(account, FakeUnitOfWork(account))
        assert is_marked(account.secret)

    def test_post_update_decrypts(self, subscriber):
        account = Account(stored(subscriber, "hunter2"))
        subscriber.post_update(account, FakeUnitOfWork(account))
        assert account.secret == "hunter2"

    def test_post_load_error_propagates(self, subscriber):
        account = Account("garbage" + MARKER)
        with pytest.raises(DecryptionError):
            subscriber.post_load(account, FakeUnitOfWork(account))


# =============================================================================
# TestFlushEvents
# =============================================================================

class TestFlushEvents:
    """Test pre_flush, on_flush and post_flush."""

    def test_pre_flush_restores_original_ciphertext(self, subscriber, counting_encryptor):
        ciphertext = stored(subscriber, "hunter2")
        account = Account(ciphertext)
        uow = FakeUnitOfWork(account)
        subscriber.post_load(account, uow)
        calls = len(counting_encryptor.encrypt_calls)

        subscriber.pre_flush(uow)

        assert account.secret == ciphertext
        assert len(counting_encryptor.encrypt_calls) == calls

    def test_pre_flush_reencrypts_changed_value(self, subscriber):
        ciphertext = stored(subscriber, "hunter2")
        account = Account(ciphertext)
        uow = FakeUnitOfWork(account)
        subscriber.post_load(account, uow)

        account.secret = "swordfish"
        subscriber.pre_flush(uow)

        assert is_marked(account.secret)
        assert account.secret != ciphertext

    def test_pre_flush_clears_cache(self, subscriber):
        account = Account(stored(subscriber, "hunter2"))
        uow = FakeUnitOfWork(account)
        subscriber.post_load(account, uow)
        assert subscriber.cache

        subscriber.pre_flush(uow)

        assert not subscriber.cache

    def test_pre_flush_only_sweeps_cached_types(self, subscriber):
        account = Account(stored(subscriber, "hunter2"))
        note = Note("plain body")
        uow = FakeUnitOfWork(account, note)
        subscriber.post_load(account, uow)

        subscriber.pre_flush(uow)

        assert is_marked(account.secret)
        assert note.body == "plain body"

    def test_pre_flush_with_empty_cache_is_noop(self, subscriber):
        account = Account("hunter2")
        subscriber.pre_flush(FakeUnitOfWork(account))
        assert account.secret == "hunter2"

    def test_on_flush_encrypts_insertions_and_recomputes(self, subscriber):
        account = Account("hunter2")
        uow = FakeUnitOfWork(inserts=[account])

        subscriber.on_flush(uow)

        assert is_marked(account.secret)
        assert uow.recomputed == [("metadata:Account", account)]

    def test_on_flush_without_encryption_does_not_recompute(self, subscriber):
        already = Account(stored(subscriber, "hunter2"))
        empty = Account(None)
        uow = FakeUnitOfWork(inserts=[already, empty])

        subscriber.on_flush(uow)

        assert uow.recomputed == []

    def test_post_flush_decrypts_identity_map(self, subscriber):
        account = Account(stored(subscriber, "hunter2"))
        note = Note(stored(subscriber, "dear diary", cls=Note))

        subscriber.post_flush(FakeUnitOfWork(account, note))

        assert account.secret == "hunter2"
        assert note.body == "dear diary"

    def test_full_cycle_keeps_ciphertext_stable(self, subscriber):
        """insert -> flush -> load -> flush leaves the stored bytes unchanged."""
        account = Account("hunter2", name="primary")
        uow = FakeUnitOfWork(inserts=[account])
        subscriber.pre_flush(uow)
        subscriber.on_flush(uow)
        written = account.secret

        uow = FakeUnitOfWork(account)
        subscriber.post_flush(uow)
        assert account.secret == "hunter2"

        account.name = "renamed"
        subscriber.pre_flush(uow)
        assert account.secret == written
        assert subscriber.encrypt_counter == 1

    def test_passthrough_without_encryptor(self, registry):
        registry.register(Account, encrypted=["secret"])
        subscriber = EncryptSubscriber(registry)
        account = Account("hunter2")
        uow = FakeUnitOfWork(account, inserts=[account])

        subscriber.pre_flush(uow)
        subscriber.on_flush(uow)
        subscriber.post_flush(uow)

        assert account.secret == "hunter2"
        assert uow.recomputed == []


# =============================================================================
# TestUnitOfWorkCalls
# =============================================================================

class TestUnitOfWorkCalls:
    """Test the calls made against the unit of work."""

    def test_pre_flush_skips_identity_map_when_cache_empty(self, subscriber):
        uow = MagicMock()
        subscriber.pre_flush(uow)
        uow.identity_map.assert_not_called()

    def test_on_flush_asks_metadata_for_runtime_type(self, subscriber):
        account = Account("hunter2")
        uow = MagicMock()
        uow.scheduled_insertions.return_value = [account]

        subscriber.on_flush(uow)

        uow.class_metadata.assert_called_once_with(Account)
        uow.recompute_change_set.assert_called_once_with(
            uow.class_metadata.return_value, account
        )
