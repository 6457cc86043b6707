"""
Tests for the Item Codec.

Tests cover:
- The fixed secret-field mapping (username, password, url, notes)
- Omission of unset fields vs. encryption of empty strings
- Per-field failure isolation on decrypt
- Stored/decrypted record conversion with plaintext metadata
"""
import pytest

from passvault.vault.fields import EncryptedField, encrypt_field
from passvault.vault.items import (
    SECRET_FIELDS,
    UNREADABLE_FIELD,
    FolderRecord,
    VaultItem,
    VaultItemRecord,
    decrypt_item,
    encrypt_item,
    open_item,
    seal_item,
)


# --- Test Field Mapping ---

class TestEncryptItem:
    """Tests for encrypting the secret fields of an item."""

    def test_secret_fields_are_fixed(self):
        """Test the secret field enumeration."""
        assert SECRET_FIELDS == ("username", "password", "url", "notes")

    @pytest.mark.asyncio
    async def test_empty_notes_kept_missing_url_omitted(self, key):
        """Test '' is encrypted while an unset field is left out."""
        out = await encrypt_item(key, {
            "username": "bob", "password": "p@ss", "notes": "",
        })
        assert set(out) == {"username", "password", "notes"}
        assert "url" not in out
        assert isinstance(out["notes"], EncryptedField)
        decrypted = await decrypt_item(key, out)
        assert decrypted["notes"] == ""

    @pytest.mark.asyncio
    async def test_all_four_fields(self, key):
        """Test the full scenario item round-trips."""
        fields = {"username": "bob", "password": "p@ss", "url": "https://x.io", "notes": ""}
        out = await encrypt_item(key, fields)
        assert set(out) == set(SECRET_FIELDS)
        assert await decrypt_item(key, out) == fields

    @pytest.mark.asyncio
    async def test_none_treated_as_unset(self, key):
        """Test None values are omitted, not encrypted."""
        out = await encrypt_item(key, {"username": "bob", "url": None})
        assert set(out) == {"username"}

    @pytest.mark.asyncio
    async def test_other_keys_ignored(self, key):
        """Test that metadata and unknown keys never get encrypted."""
        out = await encrypt_item(key, {
            "title": "Mail", "tags": ["a"], "favorite": True, "pin": "1234",
            "password": "x",
        })
        assert set(out) == {"password"}


# --- Test Decrypt Isolation ---

class TestDecryptItem:
    """Tests for decrypting stored fields."""

    @pytest.mark.asyncio
    async def test_corrupted_field_isolated(self, key):
        """Test one corrupted field becomes None while the others decrypt."""
        out = await encrypt_item(key, {"username": "bob", "password": "p@ss", "url": "https://x.io"})
        broken = out["password"].to_dict()
        broken["iv"] = broken["iv"][:4]
        stored = {**out, "password": broken}
        decrypted = await decrypt_item(key, stored)
        assert decrypted == {"username": "bob", "password": None, "url": "https://x.io"}

    @pytest.mark.asyncio
    async def test_wrong_key_all_none(self, key, other_key):
        """Test every field fails under the wrong key without raising."""
        out = await encrypt_item(key, {"username": "bob", "notes": "n"})
        assert await decrypt_item(other_key, out) == {"username": None, "notes": None}

    @pytest.mark.asyncio
    async def test_absent_fields_omitted(self, key):
        """Test stored fields that are missing or null are not reported."""
        username = await encrypt_field(key, "bob")
        decrypted = await decrypt_item(key, {"username": username, "url": None})
        assert decrypted == {"username": "bob"}


# --- Test Record Conversion ---

class TestRecords:
    """Tests for sealing and opening whole items."""

    @pytest.mark.asyncio
    async def test_seal_keeps_metadata_plaintext(self, key):
        """Test that only the secret fields are encrypted."""
        item = VaultItem(
            title="Mail", username="bob", password="p@ss", tags={"work"},
            folder_id="f1", favorite=True,
        )
        record = await seal_item(key, item)
        assert record.title == "Mail"
        assert record.tags == {"work"}
        assert record.folder_id == "f1"
        assert record.favorite is True
        assert isinstance(record.username, EncryptedField)
        assert record.url is None
        assert record.notes is None

    @pytest.mark.asyncio
    async def test_open_roundtrip(self, key):
        """Test seal followed by open restores the item."""
        item = VaultItem(title="Mail", username="bob", notes="", tags={"a", "b"})
        opened = await open_item(key, await seal_item(key, item))
        assert opened == item

    @pytest.mark.asyncio
    async def test_open_with_wrong_key(self, key, other_key):
        """Test opening under the wrong key keeps metadata and nulls secrets."""
        record = await seal_item(key, VaultItem(title="Mail", username="bob"))
        opened = await open_item(other_key, record)
        assert opened.title == "Mail"
        assert opened.username is None

    def test_record_from_stored_json(self):
        """Test loading a stored record with camelCase keys and extra members."""
        record = VaultItemRecord.model_validate({
            "_id": "abc",
            "title": "Mail",
            "username": {"ciphertext": "AAAA", "iv": list(range(12)), "_id": "x"},
            "tags": ["a", "a", "b"],
            "folderId": "f1",
            "favorite": False,
        })
        assert record.folder_id == "f1"
        assert record.tags == {"a", "b"}
        assert record.username.iv == list(range(12))
        assert set(record.secret_fields()) == {"username"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("broken", [
        {"ciphertext": "AAAA"},
        {"ciphertext": "AAAA", "iv": "abc"},
        {"iv": list(range(12))},
        "not-a-field",
        42,
    ])
    async def test_unparseable_stored_field_isolated(self, key, broken):
        """Test a stored field with a broken shape does not reject the record."""
        password = await encrypt_field(key, "p@ss")
        record = VaultItemRecord.model_validate({
            "title": "Mail", "username": broken, "password": password.to_dict(),
        })
        assert record.username == UNREADABLE_FIELD
        opened = await open_item(key, record)
        assert opened.username is None
        assert opened.password == "p@ss"

    def test_json_dict_uses_camel_case(self):
        """Test the JSON form uses the stored key names and drops unset fields."""
        item = VaultItem(title="Mail", folder_id="f1", notes="")
        data = item.to_json_dict()
        assert data["folderId"] == "f1"
        assert data["notes"] == ""
        assert "username" not in data

    def test_folder_defaults(self):
        """Test folder color and icon defaults."""
        folder = FolderRecord(name="Work")
        assert folder.color == "#3B82F6"
        assert folder.icon == "\U0001F4C1"
