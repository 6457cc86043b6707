"""
Tests for the vault store implementations.

Tests cover:
- MemoryVaultStore folder and item CRUD, paging and title lookup
- PgVaultStore statement parameters and row conversion (fake pool)
"""
import contextlib
from datetime import datetime, timezone

import orjson
import pytest

from passvault.vault.fields import EncryptedField, encrypt_field
from passvault.vault.items import UNREADABLE_FIELD, FolderRecord, VaultItemRecord, open_item
from passvault.vault.store import MemoryVaultStore, PgVaultStore

FIELD = EncryptedField(ciphertext="AAAA", iv=list(range(12)))
NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)


class FakeConn:
    """Records statements and replays canned rows."""

    def __init__(self, rows=None, row=None):
        self.rows = rows or []
        self.row = row
        self.calls = []

    async def fetch(self, query, *args):
        self.calls.append(("fetch", query, args))
        return self.rows

    async def fetchrow(self, query, *args):
        self.calls.append(("fetchrow", query, args))
        return self.row

    async def execute(self, query, *args):
        self.calls.append(("execute", query, args))
        return "UPDATE 1"


class FakePool:
    def __init__(self, conn):
        self.conn = conn

    @contextlib.asynccontextmanager
    async def acquire(self):
        yield self.conn


def _item_row(**overrides):
    row = {
        "id": 7,
        "title": "Mail",
        "username": orjson.dumps(FIELD.to_dict()).decode(),
        "password": None,
        "url": None,
        "notes": {"ciphertext": "BBBB", "iv": [1] * 12},
        "tags": ["work"],
        "folder_id": 3,
        "favorite": True,
        "created_at": NOW,
        "updated_at": NOW,
    }
    row.update(overrides)
    return row


# --- Test Memory Store ---

class TestMemoryVaultStore:
    """Tests for the in-process store."""

    @pytest.mark.asyncio
    async def test_folders(self, store):
        """Test adding, listing and finding folders."""
        work = await store.add_folder("alice", FolderRecord(name="Work"))
        assert work.id
        assert await store.list_folders("alice") == [work]
        assert await store.find_folder_by_name("alice", "Work") == work
        assert await store.find_folder_by_name("alice", "Home") is None
        assert await store.list_folders("bob") == []

    @pytest.mark.asyncio
    async def test_add_assigns_id_and_timestamps(self, store):
        """Test stored items get an id and timestamps."""
        stored = await store.add_item("alice", VaultItemRecord(title="Mail", username=FIELD))
        assert stored.id
        assert stored.created_at is not None
        assert stored.updated_at == stored.created_at
        assert stored.username == FIELD

    @pytest.mark.asyncio
    async def test_paging_keeps_insertion_order(self, store):
        """Test limit/offset pages over items in insertion order."""
        for n in range(5):
            await store.add_item("alice", VaultItemRecord(title=f"Item {n}"))
        first = await store.list_items("alice", limit=2)
        rest = await store.list_items("alice", limit=10, offset=2)
        assert [i.title for i in first] == ["Item 0", "Item 1"]
        assert [i.title for i in rest] == ["Item 2", "Item 3", "Item 4"]
        assert await store.list_items("alice", limit=2, offset=5) == []

    @pytest.mark.asyncio
    async def test_find_by_title_is_per_user(self, store):
        """Test title lookup does not cross users."""
        await store.add_item("alice", VaultItemRecord(title="Mail"))
        await store.add_item("bob", VaultItemRecord(title="Mail"))
        assert len(await store.find_items_by_title("alice", "Mail")) == 1
        assert await store.find_items_by_title("alice", "Bank") == []

    @pytest.mark.asyncio
    async def test_update_and_delete(self, store):
        """Test updating replaces the record and delete removes it."""
        stored = await store.add_item("alice", VaultItemRecord(title="Mail"))
        await store.update_item("alice", stored.model_copy(update={"title": "Email"}))
        (current,) = await store.list_items("alice")
        assert current.title == "Email"
        assert current.id == stored.id
        await store.delete_item("alice", stored.id)
        assert await store.list_items("alice") == []

    @pytest.mark.asyncio
    async def test_update_missing_item(self, store):
        """Test updating an unknown item raises KeyError."""
        with pytest.raises(KeyError):
            await store.update_item("alice", VaultItemRecord(id="nope", title="x"))


# --- Test PostgreSQL Store ---

class TestPgVaultStore:
    """Tests for the pooled SQL store against a fake connection."""

    @pytest.mark.asyncio
    async def test_list_items_converts_rows(self):
        """Test JSON text and mapping columns both load as EncryptedField."""
        conn = FakeConn(rows=[_item_row()])
        items = await PgVaultStore(FakePool(conn)).list_items("alice", limit=10, offset=20)
        (item,) = items
        assert item.id == "7"
        assert item.folder_id == "3"
        assert item.username == FIELD
        assert item.notes.ciphertext == "BBBB"
        assert item.password is None
        assert item.tags == {"work"}
        method, _, args = conn.calls[0]
        assert method == "fetch"
        assert args == ("alice", 10, 20)

    @pytest.mark.asyncio
    async def test_corrupt_columns_do_not_break_listing(self, key):
        """Test non-JSON and wrongly typed columns load as unreadable fields."""
        password = await encrypt_field(key, "p@ss")
        conn = FakeConn(rows=[
            _item_row(
                username="{corrupt",
                password=orjson.dumps(password.to_dict()).decode(),
                url="null",
                notes=["not", "a", "field"],
            ),
            _item_row(id=8, title="Bank", username='{"ciphertext": "AAAA"}'),
        ])
        items = await PgVaultStore(FakePool(conn)).list_items("alice")
        assert [i.title for i in items] == ["Mail", "Bank"]
        mail, bank = items
        assert mail.username == UNREADABLE_FIELD
        assert mail.notes == UNREADABLE_FIELD
        assert mail.url is None
        assert bank.username == UNREADABLE_FIELD

        opened = await open_item(key, mail)
        assert opened.username is None
        assert opened.password == "p@ss"

    @pytest.mark.asyncio
    async def test_add_item_parameters(self):
        """Test insert parameters carry ciphertext JSON and sorted tags."""
        conn = FakeConn(row={"id": 9, "created_at": NOW, "updated_at": NOW})
        record = VaultItemRecord(title="Mail", username=FIELD, tags={"b", "a"}, folder_id="3")
        stored = await PgVaultStore(FakePool(conn)).add_item("alice", record)
        assert stored.id == "9"
        assert stored.created_at == NOW
        _, query, args = conn.calls[0]
        assert "INSERT INTO vault.items" in query
        assert args[0] == "alice"
        assert args[1] == "Mail"
        assert orjson.loads(args[2]) == FIELD.to_dict()
        assert args[3] is None
        assert args[6] == ["a", "b"]
        assert args[7] == "3"

    @pytest.mark.asyncio
    async def test_update_item_parameters(self):
        """Test update addresses the item by user and id."""
        conn = FakeConn()
        record = VaultItemRecord(id="9", title="Mail", password=FIELD)
        await PgVaultStore(FakePool(conn)).update_item("alice", record)
        method, query, args = conn.calls[0]
        assert method == "execute"
        assert "UPDATE vault.items" in query
        assert args[:3] == ("alice", "9", "Mail")
        assert orjson.loads(args[4]) == FIELD.to_dict()

    @pytest.mark.asyncio
    async def test_folder_lookup(self):
        """Test folder rows convert and a missing folder gives None."""
        row = {"id": 3, "name": "Work", "color": "#FF0000", "icon": "W"}
        store = PgVaultStore(FakePool(FakeConn(row=row)))
        folder = await store.find_folder_by_name("alice", "Work")
        assert folder == FolderRecord(id="3", name="Work", color="#FF0000", icon="W")
        assert await PgVaultStore(FakePool(FakeConn())).find_folder_by_name("alice", "x") is None

    @pytest.mark.asyncio
    async def test_add_folder(self):
        """Test the inserted folder is returned with its new id."""
        conn = FakeConn(row={"id": 11})
        folder = await PgVaultStore(FakePool(conn)).add_folder("alice", FolderRecord(name="Home"))
        assert folder.id == "11"
        assert folder.name == "Home"
        assert conn.calls[0][2][:2] == ("alice", "Home")

    @pytest.mark.asyncio
    async def test_delete_item(self):
        """Test delete passes user and item id."""
        conn = FakeConn()
        await PgVaultStore(FakePool(conn)).delete_item("alice", "9")
        assert conn.calls[0][0] == "execute"
        assert conn.calls[0][2] == ("alice", "9")
