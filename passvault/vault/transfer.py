"""
Vault Transfer — Export a stored vault and merge an imported one.

Merge rules:
- Folders are matched by name and reused; missing ones are created and the
  item folder ids in the snapshot are remapped.
- Items are de-duplicated on (title, username). Items carrying stored
  ciphertext compare the username ciphertext directly. Plaintext items are
  compared against same-title items by decrypting their usernames with the
  live key. This is best effort, not an identity check.
- There is no rollback. A failure part-way stops the merge and the summary
  reports what was committed before it.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from ..exceptions import CryptoUnavailable, VaultLocked
from .config import VaultConfig
from .export import ExportBundle, ExportableItem, ImportedVault, export_bundle, import_bundle
from .fields import decrypt_field
from .items import FolderRecord, VaultItemRecord
from .session import VaultKeyContext
from .store import VaultStore

logger = logging.getLogger("passvault.vault")

_UNREADABLE = object()


@dataclass
class ImportSummary:
    """Counts of what a merge committed."""

    folders: int = 0
    items: int = 0
    skipped: int = 0
    error: Optional[Exception] = None

    @property
    def complete(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {"folders": self.folders, "items": self.items, "skipped": self.skipped}


async def export_vault(
    context: VaultKeyContext,
    store: VaultStore,
    user_id: Any,
    export_password: str,
    config: Optional[VaultConfig] = None,
) -> ExportBundle:
    """Decrypt a user's stored vault with the live key and export it.

    Fields that fail to decrypt are exported as missing.
    """
    records = await store.list_items(user_id)
    items = [await context.open(record) for record in records]
    folders = await store.list_folders(user_id)
    bundle = await export_bundle(export_password, items, folders, config=config)
    logger.info("Vault exported: user=%s items=%d", user_id, len(items))
    return bundle


async def _stored_username(context: VaultKeyContext, record: VaultItemRecord) -> Any:
    if record.username is None:
        return None
    result = await decrypt_field(context.key, record.username, name="username")
    return result.value if result.ok else _UNREADABLE


async def _is_duplicate(
    context: VaultKeyContext,
    store: VaultStore,
    user_id: Any,
    item: ExportableItem,
) -> bool:
    candidates = await store.find_items_by_title(user_id, item.title)
    if not candidates:
        return False
    if isinstance(item, VaultItemRecord):
        wanted = item.username.ciphertext if item.username else None
        return any(
            (c.username.ciphertext if c.username else None) == wanted
            for c in candidates
        )
    for candidate in candidates:
        if await _stored_username(context, candidate) == item.username:
            return True
    return False


async def merge_import(
    context: VaultKeyContext,
    store: VaultStore,
    user_id: Any,
    imported: ImportedVault,
) -> ImportSummary:
    """Apply an imported snapshot to the user's store.

    Plaintext items are encrypted with the live vault key before they are
    persisted.

    Returns:
        ImportSummary with created folder/item counts and skipped duplicates.
        ``error`` is set if the merge stopped early.

    Raises:
        VaultLocked: If the context has no live key.
    """
    if not context.is_unlocked:
        raise VaultLocked("Vault is locked")
    summary = ImportSummary()
    folder_map: dict[Optional[str], Optional[str]] = {}
    try:
        for folder in imported.folders:
            existing = await store.find_folder_by_name(user_id, folder.name)
            if existing is None:
                created = await store.add_folder(
                    user_id, FolderRecord(name=folder.name, color=folder.color, icon=folder.icon),
                )
                folder_map[folder.id] = created.id
                summary.folders += 1
            else:
                folder_map[folder.id] = existing.id

        for item in imported.items:
            if await _is_duplicate(context, store, user_id, item):
                summary.skipped += 1
                continue
            record = item if isinstance(item, VaultItemRecord) else await context.seal(item)
            record = record.model_copy(update={
                "id": None,
                "folder_id": folder_map.get(item.folder_id) if item.folder_id else None,
                "created_at": None,
                "updated_at": None,
            })
            await store.add_item(user_id, record)
            summary.items += 1
    except (VaultLocked, CryptoUnavailable):
        raise
    except Exception as err:
        logger.error(
            "Import stopped for user=%s after %d item(s): %s",
            user_id, summary.items, err,
        )
        summary.error = err
        return summary

    logger.info(
        "Import completed for user=%s: folders=%d items=%d skipped=%d",
        user_id, summary.folders, summary.items, summary.skipped,
    )
    return summary


async def import_vault(
    context: VaultKeyContext,
    store: VaultStore,
    user_id: Any,
    import_password: str,
    bundle: Union[ExportBundle, dict, str, bytes],
    config: Optional[VaultConfig] = None,
) -> ImportSummary:
    """Decrypt a bundle and merge it. Nothing is written if decryption fails.

    Raises:
        InvalidFormat: Malformed bundle.
        InvalidImportPassword: Wrong password or tampered bundle.
    """
    if not context.is_unlocked:
        raise VaultLocked("Vault is locked")
    imported = await import_bundle(import_password, bundle, config=config)
    return await merge_import(context, store, user_id, imported)
