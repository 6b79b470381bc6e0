"""
Unit tests for the exception hierarchy.
"""

import pytest

from fieldvault.lib.exceptions import (
    ConfigurationError,
    DecryptionError,
    EncryptionError,
    FieldVaultException,
    PropertyAccessError,
    RegistrationError,
)


@pytest.mark.parametrize(
    "exc_cls",
    [ConfigurationError, EncryptionError, DecryptionError, RegistrationError, PropertyAccessError],
)
def test_all_errors_share_base(exc_cls):
    """Every library error can be caught as FieldVaultException."""
    with pytest.raises(FieldVaultException):
        raise exc_cls("boom")


def test_decryption_error_caught_as_encryption_error():
    with pytest.raises(EncryptionError):
        raise DecryptionError("tampered")


def test_message_preserved():
    assert str(ConfigurationError("missing key")) == "missing key"
