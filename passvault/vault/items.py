"""
Item Codec — Encrypted and decrypted views of vault items and folders.

Only the fields named in ``SECRET_FIELDS`` ever go through the Field Cipher.
Title, tags, folder and favorite flag are plaintext metadata so the server can
query them. Adding a secret field means extending ``SECRET_FIELDS``; nothing
iterates over arbitrary record keys.
"""
import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .crypto import VaultKey
from .fields import EncryptedField, decrypt_field, encrypt_field

logger = logging.getLogger("passvault.vault")

SECRET_FIELDS: tuple[str, ...] = ("username", "password", "url", "notes")

# Stand-in for a stored field that cannot be parsed; decrypts as a failure.
UNREADABLE_FIELD = EncryptedField(ciphertext="", iv=[])

DEFAULT_FOLDER_COLOR = "#3B82F6"
DEFAULT_FOLDER_ICON = "\U0001F4C1"


class FolderRecord(BaseModel):
    """A user folder. Never encrypted."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    name: str
    color: str = DEFAULT_FOLDER_COLOR
    icon: str = DEFAULT_FOLDER_ICON


class _ItemBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    title: str
    tags: set[str] = Field(default_factory=set)
    folder_id: Optional[str] = Field(default=None, alias="folderId")
    favorite: bool = False
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    def metadata(self) -> dict[str, Any]:
        """Plaintext metadata shared by the stored and decrypted views."""
        return self.model_dump(exclude=set(SECRET_FIELDS))

    def to_json_dict(self) -> dict[str, Any]:
        """camelCase JSON-ready form; unset secret fields are left out."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class VaultItemRecord(_ItemBase):
    """A vault item as stored: the four secret fields are ciphertext.

    A secret field with a broken shape loads as ``UNREADABLE_FIELD`` instead
    of rejecting the record, so the other fields stay readable.
    """

    username: Optional[EncryptedField] = None
    password: Optional[EncryptedField] = None
    url: Optional[EncryptedField] = None
    notes: Optional[EncryptedField] = None

    @field_validator(*SECRET_FIELDS, mode="wrap")
    @classmethod
    def keep_unreadable_fields(cls, value: Any, handler: Any, info: Any) -> Optional[EncryptedField]:
        try:
            return handler(value)
        except ValidationError:
            logger.warning("Stored field has an invalid shape: field=%s", info.field_name)
            return UNREADABLE_FIELD

    def secret_fields(self) -> dict[str, EncryptedField]:
        return {
            name: getattr(self, name)
            for name in SECRET_FIELDS
            if getattr(self, name) is not None
        }


class VaultItem(_ItemBase):
    """A vault item decrypted in memory.

    A secret field is None when it was never set or could not be decrypted.
    """

    username: Optional[str] = None
    password: Optional[str] = None
    url: Optional[str] = None
    notes: Optional[str] = None

    def secret_fields(self) -> dict[str, str]:
        return {
            name: getattr(self, name)
            for name in SECRET_FIELDS
            if getattr(self, name) is not None
        }


async def encrypt_item(key: VaultKey, fields: Mapping[str, Any]) -> dict[str, EncryptedField]:
    """Encrypt the secret fields of an item.

    Args:
        key: Live vault key.
        fields: Mapping that may hold username/password/url/notes. Other
            keys are ignored. Missing or None values are omitted from the
            result; the empty string is encrypted.

    Returns:
        Mapping of field name to EncryptedField.
    """
    out: dict[str, EncryptedField] = {}
    for name in SECRET_FIELDS:
        value = fields.get(name)
        if value is None:
            continue
        out[name] = await encrypt_field(key, value)
    return out


async def decrypt_item(key: VaultKey, stored: Mapping[str, Any]) -> dict[str, Optional[str]]:
    """Decrypt the secret fields of a stored item.

    Args:
        key: Live vault key.
        stored: Mapping of field name to EncryptedField (or its dict form).

    Returns:
        Mapping of field name to plaintext, or None for a field that failed
        to decrypt. Fields not present in ``stored`` are omitted.
    """
    out: dict[str, Optional[str]] = {}
    for name in SECRET_FIELDS:
        field = stored.get(name)
        if field is None:
            continue
        result = await decrypt_field(key, field, name=name)
        out[name] = result.value_or(None)
    return out


async def seal_item(key: VaultKey, item: VaultItem) -> VaultItemRecord:
    """Encrypt a decrypted item into its stored form."""
    encrypted = await encrypt_item(key, item.secret_fields())
    return VaultItemRecord(**item.metadata(), **encrypted)


async def open_item(key: VaultKey, record: VaultItemRecord) -> VaultItem:
    """Decrypt a stored item; undecryptable fields become None."""
    decrypted = await decrypt_item(key, record.secret_fields())
    return VaultItem(**record.metadata(), **decrypted)
