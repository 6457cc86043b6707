"""
PassVault exceptions.

Key-derivation and bundle-level failures are raised to the caller.
Per-field decrypt failures are *returned* (see ``FieldResult``) so that a
single corrupted field never blocks the rest of the vault.
"""


class VaultError(Exception):
    """Base class for every error raised by the vault engine."""


class InvalidSalt(VaultError, ValueError):
    """Salt is missing, empty, or cannot be decoded from its stored form."""


class FieldDecryptFailure(VaultError):
    """A single encrypted field could not be decrypted.

    Carries the name of the field (when known) and a short reason; never the
    ciphertext or any key material.
    """

    def __init__(self, reason: str, field: str | None = None):
        self.reason = reason
        self.field = field
        label = f"{field}: " if field else ""
        super().__init__(f"{label}{reason}")


class InvalidFormat(VaultError, ValueError):
    """Export bundle (or its decrypted snapshot) has the wrong shape."""


class InvalidImportPassword(VaultError):
    """Export bundle failed authentication: wrong password or tampered data."""


class CryptoUnavailable(VaultError, RuntimeError):
    """Platform randomness or cipher primitives cannot be reached."""


class VaultLocked(VaultError):
    """No vault key is live in the current session."""
