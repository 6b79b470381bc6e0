"""
Ciphertext marker protocol.

A value stored encrypted always ends with ``MARKER``. Anything without the
marker is plaintext or raw data this library never touched.
"""

from __future__ import annotations

from typing import Any

MARKER = "<ENC>"


def is_marked(value: Any) -> bool:
    """Return True if ``value`` is a non-empty string carrying the marker."""
    return isinstance(value, str) and bool(value) and value.endswith(MARKER)


def encode(ciphertext: str) -> str:
    """Tag backend ciphertext as encrypted-at-rest."""
    return ciphertext + MARKER


def decode(value: str) -> str:
    """
    Strip the marker from a stored value.

    Raises:
        ValueError: If the value does not carry the marker.
    """
    if not is_marked(value):
        raise ValueError("Value does not carry the encryption marker")
    return value[: -len(MARKER)]


__all__ = ["MARKER", "is_marked", "encode", "decode"]
