"""PassVault.

Client-side vault encryption engine for a password manager.
"""
from .version import __version__
from .exceptions import (
    VaultError,
    InvalidSalt,
    FieldDecryptFailure,
    InvalidFormat,
    InvalidImportPassword,
    CryptoUnavailable,
    VaultLocked,
)

__all__ = [
    "__version__",
    "VaultError",
    "InvalidSalt",
    "FieldDecryptFailure",
    "InvalidFormat",
    "InvalidImportPassword",
    "CryptoUnavailable",
    "VaultLocked",
]
