"""
Vault Crypto Core — Key derivation, AES-GCM primitives, salts and serialization.

Two independent derivations are implemented:
- Vault key:  PBKDF2-HMAC-SHA256(login_password, user_salt) → AES-256 key
- Export key: scrypt(export_password, fresh 16-byte salt) → AES-256 key

Both keys are consumed directly by AES-256-GCM with a random 96-bit nonce.

Security Note:
    Never log passwords, salts, plaintext, ciphertext or key bytes.
    A VaultKey lives in memory only: it refuses to pickle or copy and its
    ``repr`` never shows key material.
"""
import base64
import binascii
import hmac
import secrets
import asyncio
import logging
from typing import Any, Optional, Union

import orjson
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import CryptoUnavailable, InvalidSalt, VaultLocked
from .config import VaultConfig, get_config

logger = logging.getLogger("passvault.vault")

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # 128-bit GCM tag
KEY_LENGTH = 32  # AES-256
EXPORT_SALT_SIZE = 16

SaltInput = Union[bytes, bytearray, memoryview, str]


# ---------------------------------------------------------------------------
# Randomness
# ---------------------------------------------------------------------------

def random_bytes(length: int) -> bytes:
    """Return ``length`` bytes from the OS CSPRNG.

    Raises:
        CryptoUnavailable: If the platform has no usable randomness source.
    """
    try:
        return secrets.token_bytes(length)
    except (NotImplementedError, OSError) as err:
        raise CryptoUnavailable(
            f"Secure random source unavailable: {err}"
        ) from err


def generate_nonce() -> bytes:
    """Fresh random 12-byte AES-GCM nonce."""
    return random_bytes(NONCE_SIZE)


# ---------------------------------------------------------------------------
# Vault key
# ---------------------------------------------------------------------------

class VaultKey:
    """Opaque in-memory 256-bit AES key.

    Instances compare in constant time, are unhashable, cannot be pickled or
    copied, and can be wiped. A wiped key refuses to build ciphers.
    """

    __slots__ = ("_material", "_wiped")

    def __init__(self, material: bytes):
        if len(material) != KEY_LENGTH:
            raise ValueError(f"Vault key must be exactly {KEY_LENGTH} bytes")
        self._material = bytearray(material)
        self._wiped = False

    @property
    def wiped(self) -> bool:
        return self._wiped

    def cipher(self) -> AESGCM:
        """Build an AES-GCM cipher bound to this key.

        Raises:
            VaultLocked: If the key has been wiped.
            CryptoUnavailable: If AES-GCM is not supported by the backend.
        """
        if self._wiped:
            raise VaultLocked("Vault key has been wiped")
        return _aead(bytes(self._material))

    def wipe(self) -> None:
        """Overwrite the key material with zeros."""
        for i in range(len(self._material)):
            self._material[i] = 0
        self._wiped = True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VaultKey):
            return NotImplemented
        if self._wiped or other._wiped:
            return False
        return hmac.compare_digest(bytes(self._material), bytes(other._material))

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        state = "wiped" if self._wiped else f"{KEY_LENGTH * 8}-bit"
        return f"<VaultKey {state}>"

    def __reduce_ex__(self, protocol: Any):
        raise TypeError("VaultKey cannot be serialized or copied")


def _aead(key: bytes) -> AESGCM:
    try:
        return AESGCM(key)
    except UnsupportedAlgorithm as err:
        raise CryptoUnavailable(f"AES-GCM is not available: {err}") from err


# ---------------------------------------------------------------------------
# Salt handling
# ---------------------------------------------------------------------------

def generate_salt(length: Optional[int] = None) -> bytes:
    """Generate a random per-user salt (16 bytes unless configured otherwise)."""
    if length is None:
        length = get_config().salt_length
    return random_bytes(length)


def salt_to_base64(salt: bytes) -> str:
    """Encode a salt for storage alongside the user record."""
    return base64.b64encode(bytes(salt)).decode("ascii")


def base64_to_salt(value: str) -> bytes:
    """Decode a stored salt string.

    base64url characters are accepted and missing padding is repaired.

    Raises:
        InvalidSalt: If the value is missing, empty, or not valid base64.
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidSalt("Salt must be a non-empty base64 string")
    normalized = value.strip().replace("-", "+").replace("_", "/")
    pad = len(normalized) % 4
    if pad == 1:
        raise InvalidSalt("Salt has an invalid base64 length")
    if pad:
        normalized += "=" * (4 - pad)
    try:
        salt = base64.b64decode(normalized, validate=True)
    except (binascii.Error, ValueError) as err:
        raise InvalidSalt(f"Salt is not valid base64: {err}") from err
    if not salt:
        raise InvalidSalt("Salt decodes to zero bytes")
    return salt


def coerce_salt(salt: Optional[SaltInput]) -> bytes:
    """Accept raw salt bytes or a stored base64 string; reject anything empty."""
    if salt is None:
        raise InvalidSalt("Salt is missing")
    if isinstance(salt, str):
        return base64_to_salt(salt)
    if isinstance(salt, (bytes, bytearray, memoryview)):
        raw = bytes(salt)
        if not raw:
            raise InvalidSalt("Salt is empty")
        return raw
    raise InvalidSalt(f"Unsupported salt type: {type(salt).__name__}")


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key_sync(
    password: str,
    salt: Optional[SaltInput],
    iterations: Optional[int] = None,
) -> VaultKey:
    """Derive the vault key with PBKDF2-HMAC-SHA256 (blocking).

    Args:
        password: The user's login password.
        salt: Per-user salt, raw bytes or its stored base64 form.
        iterations: PBKDF2 rounds; defaults to the configured 100,000.

    Returns:
        A 256-bit VaultKey. Identical inputs always give an identical key.

    Raises:
        InvalidSalt: If the salt is missing, empty or undecodable.
    """
    raw_salt = coerce_salt(salt)
    if iterations is None:
        iterations = get_config().pbkdf2_iterations
    if iterations < 1:
        raise ValueError("PBKDF2 iterations must be positive")
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=raw_salt,
        iterations=iterations,
    )
    return VaultKey(kdf.derive(password.encode("utf-8")))


async def derive_key(
    password: str,
    salt: Optional[SaltInput],
    iterations: Optional[int] = None,
) -> VaultKey:
    """Derive the vault key without blocking the event loop.

    See ``derive_key_sync`` for arguments and errors.
    """
    key = await asyncio.to_thread(derive_key_sync, password, salt, iterations)
    logger.debug("Vault key derived")
    return key


def derive_export_key_sync(
    password: str,
    salt: bytes,
    config: Optional[VaultConfig] = None,
) -> VaultKey:
    """Derive an export-bundle key with scrypt (blocking).

    The export salt is generated per bundle and never shared with the
    login-password derivation.
    """
    if not salt:
        raise InvalidSalt("Export salt is empty")
    config = config or get_config()
    kdf = Scrypt(
        salt=bytes(salt),
        length=KEY_LENGTH,
        n=config.scrypt_n,
        r=config.scrypt_r,
        p=config.scrypt_p,
    )
    return VaultKey(kdf.derive(password.encode("utf-8")))


# ---------------------------------------------------------------------------
# AES-GCM
# ---------------------------------------------------------------------------

def seal(key: VaultKey, plaintext: bytes, aad: Optional[bytes] = None) -> tuple[bytes, bytes]:
    """Encrypt with AES-256-GCM under a fresh nonce.

    Returns:
        Tuple of (nonce, ciphertext_with_tag).
    """
    nonce = generate_nonce()
    return nonce, key.cipher().encrypt(nonce, plaintext, aad)


def unseal(
    key: VaultKey,
    nonce: bytes,
    ciphertext: bytes,
    aad: Optional[bytes] = None,
) -> bytes:
    """Verify and decrypt AES-256-GCM ciphertext (tag appended).

    Raises:
        ValueError: If the nonce or ciphertext has the wrong size.
        cryptography.exceptions.InvalidTag: If authentication fails.
    """
    if len(nonce) != NONCE_SIZE:
        raise ValueError(
            f"Nonce must be exactly {NONCE_SIZE} bytes, got {len(nonce)}"
        )
    if len(ciphertext) < TAG_SIZE:
        raise ValueError(
            f"Ciphertext too short: {len(ciphertext)} bytes (minimum {TAG_SIZE})"
        )
    return key.cipher().decrypt(nonce, ciphertext, aad)


# ---------------------------------------------------------------------------
# Value serialization
# ---------------------------------------------------------------------------

def serialize_value(value: Any) -> bytes:
    """Serialize a JSON-compatible value (datetimes included) with orjson."""
    return orjson.dumps(value)


def deserialize_value(data: bytes) -> Any:
    """Inverse of ``serialize_value``.

    Raises:
        orjson.JSONDecodeError: If ``data`` is not valid JSON.
    """
    return orjson.loads(data)
