"""
Per-cycle decryption cache.

Maps (runtime type name, object identity token, property name, plaintext)
to the marked ciphertext the plaintext was decrypted from. Entries are only
written by a decrypt pass and only read by an encrypt pass, which restores
the original ciphertext instead of re-encrypting. With a non-deterministic
cipher this keeps unchanged fields byte-identical across a load/flush cycle.

Identity tokens are surrogates handed out per live instance. Two objects
with equal field values never share a token, and a token is never reused
for a new object that happens to land at a freed memory address.
"""

from __future__ import annotations

import itertools
import logging
import weakref
from typing import Any

from fieldvault.core.registry import type_name

logger = logging.getLogger(__name__)


class IdentityTokens:
    """Stable per-instance tokens.

    A weakref finalizer forgets the token when the instance is garbage
    collected. Instances that cannot be weakly referenced are pinned until
    ``clear()`` so their id cannot be recycled while a token points at it.
    """

    def __init__(self) -> None:
        self._tokens: dict[int, int] = {}
        self._finalizers: dict[int, weakref.finalize] = {}
        self._pinned: dict[int, Any] = {}
        self._counter = itertools.count(1)

    def peek(self, obj: Any) -> int | None:
        """Return the token of ``obj`` without allocating one."""
        return self._tokens.get(id(obj))

    def token_for(self, obj: Any) -> int:
        """Return the token of ``obj``, allocating it on first use."""
        key = id(obj)
        token = self._tokens.get(key)
        if token is not None:
            return token

        token = next(self._counter)
        self._tokens[key] = token
        try:
            self._finalizers[key] = weakref.finalize(obj, self._forget, key)
        except TypeError:
            self._pinned[key] = obj
        return token

    def _forget(self, key: int) -> None:
        self._tokens.pop(key, None)
        self._finalizers.pop(key, None)

    def clear(self) -> None:
        """Forget every token. The counter keeps running."""
        for finalizer in self._finalizers.values():
            finalizer.detach()
        self._finalizers.clear()
        self._tokens.clear()
        self._pinned.clear()

    def __len__(self) -> int:
        return len(self._tokens)


class DecryptionCache:
    """
    Cycle-scoped map of decrypted plaintext back to its stored ciphertext.

    Layout: ``{type name: {token: {property: {plaintext: ciphertext}}}}``.
    The type level lets the orchestrator ask which types have pending
    entries before sweeping the identity map.

    Not safe for concurrent use; one cache belongs to one subscriber.
    """

    def __init__(self) -> None:
        self._entries: dict[str, dict[int, dict[str, dict[str, str]]]] = {}
        self._tokens = IdentityTokens()

    def store(self, obj: Any, name: str, plaintext: str, ciphertext: str) -> None:
        """Record that ``plaintext`` of ``obj.name`` was decrypted from ``ciphertext``."""
        token = self._tokens.token_for(obj)
        (
            self._entries
            .setdefault(type_name(type(obj)), {})
            .setdefault(token, {})
            .setdefault(name, {})
        )[plaintext] = ciphertext

    def lookup(self, obj: Any, name: str, plaintext: Any) -> str | None:
        """Return the cached ciphertext for ``plaintext`` of ``obj.name``, if any."""
        token = self._tokens.peek(obj)
        if token is None:
            return None
        by_token = self._entries.get(type_name(type(obj)))
        if not by_token:
            return None
        try:
            return by_token.get(token, {}).get(name, {}).get(plaintext)
        except TypeError:
            # Unhashable value, never produced by a decrypt pass
            return None

    def has_entries_for(self, name: str) -> bool:
        """Whether any entry is pending for the given type name."""
        return bool(self._entries.get(name))

    def cached_types(self) -> set[str]:
        """Type names with pending entries."""
        return {name for name, by_token in self._entries.items() if by_token}

    def clear(self) -> None:
        """Discard every entry and identity token."""
        if self._entries:
            logger.debug("Clearing decryption cache: %d entries", len(self))
        self._entries.clear()
        self._tokens.clear()

    def __len__(self) -> int:
        return sum(
            len(by_plaintext)
            for by_token in self._entries.values()
            for by_name in by_token.values()
            for by_plaintext in by_name.values()
        )

    def __bool__(self) -> bool:
        return bool(self._entries)


__all__ = ["IdentityTokens", "DecryptionCache"]
