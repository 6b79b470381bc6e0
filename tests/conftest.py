"""
Shared test fixtures for fieldvault.

This module provides common fixtures used across all test modules:
- Fixed 32-byte test key and a real AES-256-GCM encryptor
- CountingEncryptor (wraps a real backend and records every cipher call)
- Fresh PropertyRegistry per test

Usage:
    All fixtures are automatically available to any test in the tests/ directory.
"""

from __future__ import annotations

import base64

import pytest

from fieldvault.core.registry import PropertyRegistry
from fieldvault.lib.encryption import AES256GCMEncryptor

# ---------------------------------------------------------------------------
# 1. Keys
# ---------------------------------------------------------------------------

TEST_KEY = b"test-key-for-fieldvault-32bytes!"  # exactly 32 bytes


@pytest.fixture()
def test_key():
    """Provide the fixed raw test key (NOT used in production)."""
    return TEST_KEY


@pytest.fixture()
def test_key_b64():
    """Provide the fixed test key base64-encoded, as settings expect it."""
    return base64.b64encode(TEST_KEY).decode("ascii")


# ---------------------------------------------------------------------------
# 2. Encryptors
# ---------------------------------------------------------------------------

class CountingEncryptor:
    """Real AES-256-GCM backend that records how often it is called."""

    def __init__(self, key: bytes = TEST_KEY) -> None:
        self._inner = AES256GCMEncryptor(key)
        self.encrypt_calls: list[str] = []
        self.decrypt_calls: list[str] = []

    def encrypt(self, plaintext: str) -> str:
        self.encrypt_calls.append(plaintext)
        return self._inner.encrypt(plaintext)

    def decrypt(self, ciphertext: str) -> str:
        self.decrypt_calls.append(ciphertext)
        return self._inner.decrypt(ciphertext)


@pytest.fixture()
def encryptor():
    """Provide an ``AES256GCMEncryptor`` with the fixed test key."""
    return AES256GCMEncryptor(TEST_KEY)


@pytest.fixture()
def counting_encryptor():
    """Provide a ``CountingEncryptor`` with the fixed test key."""
    return CountingEncryptor()


# ---------------------------------------------------------------------------
# 3. Registry
# ---------------------------------------------------------------------------

@pytest.fixture()
def registry():
    """Provide an empty ``PropertyRegistry`` (never the global one)."""
    return PropertyRegistry()
