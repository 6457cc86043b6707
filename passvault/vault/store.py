"""
Vault Store — Storage collaborator boundary for ciphertext-only records.

The engine never persists plaintext. Stores receive ``VaultItemRecord``
objects whose secret fields are already encrypted, plus plaintext folders.

Two implementations are provided:
- ``MemoryVaultStore`` — process-local dict storage (tests, offline tools)
- ``PgVaultStore`` — asyncpg-compatible pool against an existing schema;
  schema management is the caller's responsibility.
"""
import abc
import uuid
import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Optional

import orjson

from .fields import EncryptedField
from .items import SECRET_FIELDS, UNREADABLE_FIELD, FolderRecord, VaultItemRecord

logger = logging.getLogger("passvault.vault")


class VaultStore(abc.ABC):
    """Async storage interface used by export, import merge and re-key."""

    @abc.abstractmethod
    async def list_folders(self, user_id: Any) -> list[FolderRecord]:
        ...

    @abc.abstractmethod
    async def find_folder_by_name(self, user_id: Any, name: str) -> Optional[FolderRecord]:
        ...

    @abc.abstractmethod
    async def add_folder(self, user_id: Any, folder: FolderRecord) -> FolderRecord:
        """Persist a folder and return it with its assigned id."""

    @abc.abstractmethod
    async def list_items(
        self, user_id: Any, limit: Optional[int] = None, offset: int = 0,
    ) -> list[VaultItemRecord]:
        """Return items in a stable order, optionally one page at a time."""

    @abc.abstractmethod
    async def find_items_by_title(self, user_id: Any, title: str) -> list[VaultItemRecord]:
        ...

    @abc.abstractmethod
    async def add_item(self, user_id: Any, record: VaultItemRecord) -> VaultItemRecord:
        """Persist an item and return it with its assigned id."""

    @abc.abstractmethod
    async def update_item(self, user_id: Any, record: VaultItemRecord) -> None:
        ...

    @abc.abstractmethod
    async def delete_item(self, user_id: Any, item_id: str) -> None:
        ...


class MemoryVaultStore(VaultStore):
    """In-memory store keyed by user id, preserving insertion order."""

    def __init__(self):
        self._folders: dict[Any, dict[str, FolderRecord]] = {}
        self._items: dict[Any, dict[str, VaultItemRecord]] = {}

    async def list_folders(self, user_id: Any) -> list[FolderRecord]:
        return list(self._folders.get(user_id, {}).values())

    async def find_folder_by_name(self, user_id: Any, name: str) -> Optional[FolderRecord]:
        for folder in self._folders.get(user_id, {}).values():
            if folder.name == name:
                return folder
        return None

    async def add_folder(self, user_id: Any, folder: FolderRecord) -> FolderRecord:
        stored = folder.model_copy(update={"id": uuid.uuid4().hex})
        self._folders.setdefault(user_id, {})[stored.id] = stored
        return stored

    async def list_items(
        self, user_id: Any, limit: Optional[int] = None, offset: int = 0,
    ) -> list[VaultItemRecord]:
        items = list(self._items.get(user_id, {}).values())
        end = None if limit is None else offset + limit
        return items[offset:end]

    async def find_items_by_title(self, user_id: Any, title: str) -> list[VaultItemRecord]:
        return [
            item for item in self._items.get(user_id, {}).values()
            if item.title == title
        ]

    async def add_item(self, user_id: Any, record: VaultItemRecord) -> VaultItemRecord:
        now = datetime.now(timezone.utc)
        stored = record.model_copy(
            update={"id": uuid.uuid4().hex, "created_at": now, "updated_at": now}
        )
        self._items.setdefault(user_id, {})[stored.id] = stored
        return stored

    async def update_item(self, user_id: Any, record: VaultItemRecord) -> None:
        items = self._items.get(user_id, {})
        if record.id not in items:
            raise KeyError(f"Vault item {record.id} not found for user {user_id}")
        items[record.id] = record.model_copy(
            update={"updated_at": datetime.now(timezone.utc)}
        )

    async def delete_item(self, user_id: Any, item_id: str) -> None:
        self._items.get(user_id, {}).pop(item_id, None)


# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_SELECT_FOLDERS = """
SELECT id, name, color, icon
FROM vault.folders
WHERE user_id = $1
ORDER BY created_at, id
"""

_SELECT_FOLDER_BY_NAME = """
SELECT id, name, color, icon
FROM vault.folders
WHERE user_id = $1 AND name = $2
LIMIT 1
"""

_INSERT_FOLDER = """
INSERT INTO vault.folders (user_id, name, color, icon)
VALUES ($1, $2, $3, $4)
RETURNING id
"""

_ITEM_COLUMNS = """
id, title, username, password, url, notes, tags, folder_id, favorite,
created_at, updated_at
"""

_SELECT_ITEMS = f"""
SELECT {_ITEM_COLUMNS}
FROM vault.items
WHERE user_id = $1
ORDER BY created_at, id
LIMIT $2
OFFSET $3
"""

_SELECT_ITEMS_BY_TITLE = f"""
SELECT {_ITEM_COLUMNS}
FROM vault.items
WHERE user_id = $1 AND title = $2
"""

_INSERT_ITEM = """
INSERT INTO vault.items
    (user_id, title, username, password, url, notes, tags, folder_id, favorite)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
RETURNING id, created_at, updated_at
"""

_UPDATE_ITEM = """
UPDATE vault.items
SET title = $3, username = $4, password = $5, url = $6, notes = $7,
    tags = $8, folder_id = $9, favorite = $10, updated_at = NOW()
WHERE user_id = $1 AND id::text = $2
"""

_DELETE_ITEM = """
DELETE FROM vault.items
WHERE user_id = $1 AND id::text = $2
"""


def _field_to_db(field: Optional[EncryptedField]) -> Optional[str]:
    if field is None:
        return None
    return orjson.dumps(field.to_dict()).decode("utf-8")


def _field_from_db(value: Any) -> Any:
    # jsonb arrives as text unless the pool registered a json codec
    if value is None:
        return None
    if isinstance(value, (str, bytes)):
        try:
            value = orjson.loads(value)
        except orjson.JSONDecodeError:
            logger.warning("Stored field column is not valid JSON")
            return UNREADABLE_FIELD
        if value is None:
            return None
    if not isinstance(value, Mapping):
        return UNREADABLE_FIELD
    return dict(value)


def _row_to_folder(row: Mapping) -> FolderRecord:
    return FolderRecord(
        id=str(row["id"]), name=row["name"], color=row["color"], icon=row["icon"],
    )


def _row_to_item(row: Mapping) -> VaultItemRecord:
    secrets_ = {name: _field_from_db(row[name]) for name in SECRET_FIELDS}
    folder_id = row["folder_id"]
    return VaultItemRecord(
        id=str(row["id"]),
        title=row["title"],
        tags=set(row["tags"] or []),
        folder_id=None if folder_id is None else str(folder_id),
        favorite=bool(row["favorite"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        **secrets_,
    )


class PgVaultStore(VaultStore):
    """Vault store backed by an asyncpg-compatible connection pool."""

    def __init__(self, db_pool: Any):
        self._db = db_pool

    async def list_folders(self, user_id: Any) -> list[FolderRecord]:
        async with self._db.acquire() as conn:
            rows = await conn.fetch(_SELECT_FOLDERS, user_id)
        return [_row_to_folder(row) for row in rows]

    async def find_folder_by_name(self, user_id: Any, name: str) -> Optional[FolderRecord]:
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(_SELECT_FOLDER_BY_NAME, user_id, name)
        return None if row is None else _row_to_folder(row)

    async def add_folder(self, user_id: Any, folder: FolderRecord) -> FolderRecord:
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(
                _INSERT_FOLDER, user_id, folder.name, folder.color, folder.icon,
            )
        logger.debug("Folder stored: user=%s", user_id)
        return folder.model_copy(update={"id": str(row["id"])})

    async def list_items(
        self, user_id: Any, limit: Optional[int] = None, offset: int = 0,
    ) -> list[VaultItemRecord]:
        async with self._db.acquire() as conn:
            rows = await conn.fetch(_SELECT_ITEMS, user_id, limit, offset)
        return [_row_to_item(row) for row in rows]

    async def find_items_by_title(self, user_id: Any, title: str) -> list[VaultItemRecord]:
        async with self._db.acquire() as conn:
            rows = await conn.fetch(_SELECT_ITEMS_BY_TITLE, user_id, title)
        return [_row_to_item(row) for row in rows]

    async def add_item(self, user_id: Any, record: VaultItemRecord) -> VaultItemRecord:
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(
                _INSERT_ITEM,
                user_id,
                record.title,
                _field_to_db(record.username),
                _field_to_db(record.password),
                _field_to_db(record.url),
                _field_to_db(record.notes),
                sorted(record.tags),
                record.folder_id,
                record.favorite,
            )
        logger.debug("Vault item stored: user=%s", user_id)
        return record.model_copy(update={
            "id": str(row["id"]),
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        })

    async def update_item(self, user_id: Any, record: VaultItemRecord) -> None:
        async with self._db.acquire() as conn:
            await conn.execute(
                _UPDATE_ITEM,
                user_id,
                record.id,
                record.title,
                _field_to_db(record.username),
                _field_to_db(record.password),
                _field_to_db(record.url),
                _field_to_db(record.notes),
                sorted(record.tags),
                record.folder_id,
                record.favorite,
            )

    async def delete_item(self, user_id: Any, item_id: str) -> None:
        async with self._db.acquire() as conn:
            await conn.execute(_DELETE_ITEM, user_id, item_id)
        logger.debug("Vault item deleted: user=%s item=%s", user_id, item_id)
