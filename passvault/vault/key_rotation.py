"""
Vault Key Rotation — Batch re-encryption of stored fields under a new vault key.

Used when the master password (or its salt) changes: every stored secret
field is decrypted with the old key and re-encrypted with the new one, page by
page. Each item is written as a whole; an item with any field that fails to
decrypt is left untouched and counted as an error, so it stays readable with
the old key.

Security Note:
    Plaintext exists in memory only while one item is being re-encrypted.
    Never log plaintext or ciphertext values.
"""
import logging
from typing import Any, Optional

from ..exceptions import CryptoUnavailable, VaultLocked
from .config import get_config
from .crypto import VaultKey
from .fields import decrypt_field
from .items import encrypt_item
from .store import VaultStore

logger = logging.getLogger("passvault.vault")


async def rotate_vault_key(
    store: VaultStore,
    user_id: Any,
    old_key: VaultKey,
    new_key: VaultKey,
    batch_size: Optional[int] = None,
) -> dict:
    """Re-encrypt all of a user's items from ``old_key`` to ``new_key``.

    Args:
        store: Vault store holding the user's items.
        user_id: Owner of the items.
        old_key: Key the items are currently encrypted with.
        new_key: Key to re-encrypt with.
        batch_size: Items fetched per page (default from config).

    Returns:
        Stats dict with keys: total, rotated, errors, skipped.

    Raises:
        VaultLocked: If either key has been wiped.
    """
    if old_key.wiped or new_key.wiped:
        raise VaultLocked("Cannot rotate with a wiped vault key")
    batch_size = batch_size or get_config().rekey_batch_size
    stats = {"total": 0, "rotated": 0, "errors": 0, "skipped": 0}
    offset = 0

    logger.info(
        "Starting vault key rotation for user=%s (batch_size=%d)",
        user_id, batch_size,
    )

    while True:
        records = await store.list_items(user_id, limit=batch_size, offset=offset)
        if not records:
            break

        batch_num = (offset // batch_size) + 1
        logger.info("Processing batch %d (%d items)", batch_num, len(records))

        for record in records:
            stats["total"] += 1
            fields = record.secret_fields()
            if not fields:
                stats["skipped"] += 1
                continue
            try:
                plaintext = {}
                for name, field in fields.items():
                    result = await decrypt_field(old_key, field, name=name)
                    plaintext[name] = result.unwrap()
                encrypted = await encrypt_item(new_key, plaintext)
                await store.update_item(user_id, record.model_copy(update=encrypted))
                stats["rotated"] += 1
            except (VaultLocked, CryptoUnavailable):
                raise
            except Exception as err:
                logger.error(
                    "Error rotating vault item id=%s for user=%s: %s",
                    record.id, user_id, err,
                )
                stats["errors"] += 1

        offset += len(records)

    logger.info("Vault key rotation complete: %s", stats)
    return stats
