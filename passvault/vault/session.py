"""
VaultKeyContext — The session-owned holder of the live vault key.

Provides the unlock/lock lifecycle and the salt contract with the
authentication layer:
- ``derive(password, salt)`` — derive and install the vault key
- ``clear()`` — wipe the key (logout, lock, page unload)
- ``key`` — the live key, or ``VaultLocked``
- ``encrypt_item`` / ``decrypt_item`` / ``seal`` / ``open`` — Item Codec
  calls bound to the live key
- ``ensure_salt`` / ``new_user_salt`` — what the auth layer calls to hand a
  salt to the engine on registration, login and password verification

There is no process-wide key. Each session creates its own context and passes
it to engine calls.

Security Note:
    The key is never persisted or transmitted. A derivation still running
    when the context is cleared is discarded on completion.
"""
import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Optional

from ..exceptions import InvalidSalt, VaultLocked
from .crypto import (
    SaltInput,
    VaultKey,
    base64_to_salt,
    derive_key,
    generate_salt,
    salt_to_base64,
)
from .fields import EncryptedField, FieldResult, decrypt_field, encrypt_field
from .items import VaultItem, VaultItemRecord, decrypt_item, encrypt_item, open_item, seal_item

logger = logging.getLogger("passvault.vault")


class VaultKeyContext:
    """Single-writer holder of one user's vault key.

    ``derive`` replaces the key, ``clear`` erases it; every encrypt/decrypt
    reads the same immutable key object.
    """

    def __init__(self, user_id: Any = None, iterations: Optional[int] = None):
        self._user_id = user_id
        self._iterations = iterations
        self._key: Optional[VaultKey] = None
        self._unlocked_at: Optional[datetime] = None
        # bumped on every clear(); lets in-flight derivations detect a logout
        self._generation = 0

    def __repr__(self) -> str:
        state = "unlocked" if self.is_unlocked else "locked"
        return f"<VaultKeyContext user={self._user_id!r} {state}>"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def user_id(self) -> Any:
        return self._user_id

    @property
    def is_unlocked(self) -> bool:
        return self._key is not None

    @property
    def unlocked_at(self) -> Optional[datetime]:
        return self._unlocked_at

    @property
    def key(self) -> VaultKey:
        """The live vault key.

        Raises:
            VaultLocked: If no key has been derived, or it was cleared.
        """
        if self._key is None:
            raise VaultLocked("Vault is locked")
        return self._key

    async def derive(self, password: str, salt: Optional[SaltInput]) -> VaultKey:
        """Derive the vault key from the login password and the user's salt.

        Args:
            password: Login password.
            salt: Salt as returned by the auth layer (base64) or raw bytes.

        Returns:
            The newly installed VaultKey. Any previous key is wiped.

        Raises:
            InvalidSalt: If the salt is missing or malformed.
            VaultLocked: If ``clear()`` ran while the derivation was in flight.
        """
        generation = self._generation
        key = await derive_key(password, salt, self._iterations)
        if generation != self._generation:
            key.wipe()
            raise VaultLocked("Session was locked while the vault key was being derived")
        previous, self._key = self._key, key
        if previous is not None:
            previous.wipe()
        self._unlocked_at = datetime.now(timezone.utc)
        logger.info("Vault unlocked: user=%s", self._user_id)
        return key

    def clear(self) -> None:
        """Wipe and drop the live key. Safe to call when already locked."""
        self._generation += 1
        if self._key is not None:
            self._key.wipe()
            logger.info("Vault locked: user=%s", self._user_id)
        self._key = None
        self._unlocked_at = None

    # ------------------------------------------------------------------
    # Codec calls bound to the live key
    # ------------------------------------------------------------------

    async def encrypt(self, plaintext: str) -> EncryptedField:
        return await encrypt_field(self.key, plaintext)

    async def decrypt(self, field: Any, name: Optional[str] = None) -> FieldResult:
        return await decrypt_field(self.key, field, name=name)

    async def encrypt_item(self, fields: Mapping[str, Any]) -> dict[str, EncryptedField]:
        return await encrypt_item(self.key, fields)

    async def decrypt_item(self, stored: Mapping[str, Any]) -> dict[str, Optional[str]]:
        return await decrypt_item(self.key, stored)

    async def seal(self, item: VaultItem) -> VaultItemRecord:
        return await seal_item(self.key, item)

    async def open(self, record: VaultItemRecord) -> VaultItem:
        return await open_item(self.key, record)


# ---------------------------------------------------------------------------
# Salt contract with the authentication layer
# ---------------------------------------------------------------------------

def new_user_salt() -> str:
    """Fresh base64 salt for a newly registered user."""
    return salt_to_base64(generate_salt())


def ensure_salt(existing: Optional[str]) -> tuple[str, bool]:
    """Return the user's salt, creating one for accounts that predate salts.

    Args:
        existing: The stored salt string, or None/empty if the user has none.

    Returns:
        Tuple of (salt_base64, created). The caller must persist the salt
        when ``created`` is True before returning it to the client.

    Raises:
        InvalidSalt: If a stored salt exists but cannot be decoded. It is
            never silently replaced: a new salt would orphan the vault.
    """
    if existing:
        base64_to_salt(existing)
        return existing, False
    logger.info("Generated salt for account without one")
    return new_user_salt(), True


async def unlock_from_response(
    context: VaultKeyContext,
    password: str,
    payload: Mapping[str, Any],
) -> VaultKey:
    """Unlock a context from a login, registration or verify-password reply.

    Args:
        context: Session key context to unlock.
        password: The password the user just entered.
        payload: Decoded JSON reply; its ``salt`` member is used.

    Raises:
        InvalidSalt: If the reply carries no salt.
    """
    salt = payload.get("salt")
    if not salt:
        raise InvalidSalt("Authentication response did not include a salt")
    return await context.derive(password, salt)
