"""
Export/Import Codec — Password-protected vault snapshots.

Bundle format (JSON file)::

    {"algorithm": "aes-256-gcm", "salt": hex, "iv": hex,
     "authTag": hex, "data": hex}

- Key:   scrypt(export_password, salt, 32 bytes), salt fresh per export.
  N, r and p come from the config and are not stored in the bundle.
- Nonce: fresh 12 bytes per export
- Tag:   16-byte GCM tag, carried separately from ``data``

Import runs the identical AES-256-GCM construction with the stored nonce and
tag, so a wrong password or any tampering fails authentication and nothing is
returned.

Security Note:
    The snapshot holds plaintext secrets; it only ever exists in memory and
    is encrypted under the export key, independent of the vault key.
"""
import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Optional, Union

import orjson
from cryptography.exceptions import InvalidTag
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import InvalidFormat, InvalidImportPassword
from .config import VaultConfig
from .crypto import (
    EXPORT_SALT_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
    derive_export_key_sync,
    deserialize_value,
    random_bytes,
    seal,
    serialize_value,
    unseal,
)
from .items import SECRET_FIELDS, FolderRecord, VaultItem, VaultItemRecord

logger = logging.getLogger("passvault.vault")

EXPORT_ALGORITHM = "aes-256-gcm"
EXPORT_FORMAT_VERSION = "1.0"

ExportableItem = Union[VaultItem, VaultItemRecord]


class ExportBundle(BaseModel):
    """Encrypted export file. Every binary member is hex encoded."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    algorithm: str
    salt: str
    iv: str
    auth_tag: str = Field(alias="authTag")
    data: str

    def to_dict(self) -> dict[str, str]:
        return self.model_dump(by_alias=True)

    def to_json(self, indent: bool = False) -> bytes:
        option = orjson.OPT_INDENT_2 if indent else 0
        return orjson.dumps(self.to_dict(), option=option)

    @classmethod
    def from_json(cls, data: Union[str, bytes]) -> "ExportBundle":
        """Parse a bundle file.

        Raises:
            InvalidFormat: If the text is not JSON or lacks bundle members.
        """
        try:
            raw = orjson.loads(data)
        except orjson.JSONDecodeError as err:
            raise InvalidFormat(f"Export bundle is not valid JSON: {err}") from err
        return cls.from_mapping(raw)

    @classmethod
    def from_mapping(cls, raw: Any) -> "ExportBundle":
        if not isinstance(raw, Mapping):
            raise InvalidFormat("Export bundle must be a JSON object")
        try:
            return cls.model_validate(dict(raw))
        except ValidationError as err:
            missing = sorted({str(e["loc"][0]) for e in err.errors() if e["loc"]})
            raise InvalidFormat(
                f"Export bundle is malformed (fields: {', '.join(missing) or '?'})"
            ) from err


@dataclass
class ImportedVault:
    """Decrypted content of an export bundle.

    Items are ``VaultItem`` (plaintext secrets) for bundles written by this
    engine. Bundles whose items carry stored ciphertext fields yield
    ``VaultItemRecord`` entries instead.
    """

    version: str
    exported_at: Optional[str] = None
    folders: list[FolderRecord] = field(default_factory=list)
    items: list[ExportableItem] = field(default_factory=list)


def export_filename(day: Optional[date] = None) -> str:
    """Suggested file name for a bundle written on ``day`` (default: today, UTC)."""
    day = day or datetime.now(timezone.utc).date()
    return f"securevault-export-{day.isoformat()}.json"


# ---------------------------------------------------------------------------
# Snapshot (plaintext JSON document inside the bundle)
# ---------------------------------------------------------------------------

def build_snapshot(
    items: Iterable[ExportableItem],
    folders: Iterable[FolderRecord],
    exported_at: Optional[datetime] = None,
) -> dict[str, Any]:
    exported_at = exported_at or datetime.now(timezone.utc)
    return {
        "version": EXPORT_FORMAT_VERSION,
        "exportedAt": exported_at.isoformat(),
        "folders": [f.model_dump(mode="json") for f in folders],
        "items": [item.to_json_dict() for item in items],
    }


def _parse_item(raw: Any) -> ExportableItem:
    if not isinstance(raw, Mapping):
        raise InvalidFormat("Snapshot item must be an object")
    present = [raw[name] for name in SECRET_FIELDS if raw.get(name) is not None]
    if all(isinstance(value, str) for value in present):
        return VaultItem.model_validate(dict(raw))
    if all(isinstance(value, Mapping) for value in present):
        return VaultItemRecord.model_validate(dict(raw))
    raise InvalidFormat("Snapshot item mixes plaintext and encrypted fields")


def parse_snapshot(plaintext: bytes) -> ImportedVault:
    """Validate and load a decrypted snapshot.

    Raises:
        InvalidFormat: If the document is not JSON, or lacks ``version`` or
            ``items``, or contains malformed folders/items.
    """
    try:
        doc = deserialize_value(plaintext)
    except orjson.JSONDecodeError as err:
        raise InvalidFormat("Decrypted snapshot is not valid JSON") from err
    if not isinstance(doc, dict) or not doc.get("version") or not isinstance(doc.get("items"), list):
        raise InvalidFormat("Invalid import file format")
    folders_raw = doc.get("folders") or []
    if not isinstance(folders_raw, list):
        raise InvalidFormat("Snapshot folders must be a list")
    try:
        folders = [FolderRecord.model_validate(f) for f in folders_raw]
        items = [_parse_item(i) for i in doc["items"]]
    except ValidationError as err:
        raise InvalidFormat(f"Snapshot contains a malformed entry: {err.error_count()} error(s)") from err
    return ImportedVault(
        version=str(doc["version"]),
        exported_at=doc.get("exportedAt"),
        folders=folders,
        items=items,
    )


# ---------------------------------------------------------------------------
# Encryption
# ---------------------------------------------------------------------------

def _encrypt_bundle(
    password: str, plaintext: bytes, config: Optional[VaultConfig],
) -> ExportBundle:
    salt = random_bytes(EXPORT_SALT_SIZE)
    key = derive_export_key_sync(password, salt, config)
    try:
        nonce, sealed = seal(key, plaintext)
    finally:
        key.wipe()
    body, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
    return ExportBundle(
        algorithm=EXPORT_ALGORITHM,
        salt=salt.hex(),
        iv=nonce.hex(),
        auth_tag=tag.hex(),
        data=body.hex(),
    )


def _decode_hex(name: str, value: str) -> bytes:
    try:
        return bytes.fromhex(value)
    except ValueError as err:
        raise InvalidFormat(f"Export bundle member '{name}' is not hex") from err


def _decrypt_bundle(
    password: str, bundle: ExportBundle, config: Optional[VaultConfig],
) -> bytes:
    if bundle.algorithm.lower() != EXPORT_ALGORITHM:
        raise InvalidFormat(f"Unsupported export algorithm: {bundle.algorithm}")
    salt = _decode_hex("salt", bundle.salt)
    nonce = _decode_hex("iv", bundle.iv)
    tag = _decode_hex("authTag", bundle.auth_tag)
    body = _decode_hex("data", bundle.data)
    if not salt:
        raise InvalidFormat("Export bundle salt is empty")
    if len(nonce) != NONCE_SIZE:
        raise InvalidFormat(f"Export bundle iv must be {NONCE_SIZE} bytes")
    if len(tag) != TAG_SIZE:
        raise InvalidFormat(f"Export bundle authTag must be {TAG_SIZE} bytes")
    key = derive_export_key_sync(password, salt, config)
    try:
        return unseal(key, nonce, body + tag)
    except InvalidTag as err:
        raise InvalidImportPassword(
            "Invalid import password or corrupted file"
        ) from err
    finally:
        key.wipe()


async def export_bundle(
    export_password: str,
    items: Iterable[ExportableItem],
    folders: Iterable[FolderRecord],
    config: Optional[VaultConfig] = None,
    exported_at: Optional[datetime] = None,
) -> ExportBundle:
    """Encrypt a vault snapshot under a key derived from ``export_password``.

    Args:
        export_password: Password protecting the bundle (required).
        items: Decrypted vault items.
        folders: User folders.
        config: Optional scrypt parameters.
        exported_at: Timestamp recorded in the snapshot (default: now).

    Returns:
        ExportBundle ready to be written with ``to_json``.
    """
    if not export_password:
        raise ValueError("Export password is required")
    items = list(items)
    folders = list(folders)
    plaintext = serialize_value(build_snapshot(items, folders, exported_at))
    bundle = await asyncio.to_thread(_encrypt_bundle, export_password, plaintext, config)
    logger.info(
        "Export bundle created: %d item(s), %d folder(s)", len(items), len(folders),
    )
    return bundle


async def import_bundle(
    import_password: str,
    bundle: Union[ExportBundle, Mapping, str, bytes],
    config: Optional[VaultConfig] = None,
) -> ImportedVault:
    """Authenticate, decrypt and parse an export bundle.

    Args:
        import_password: Password the bundle was exported with.
        bundle: ExportBundle, its mapping form, or the JSON file contents.
        config: Optional scrypt parameters (must match the export side).

    Returns:
        ImportedVault with folders and items.

    Raises:
        InvalidFormat: Malformed bundle or decrypted snapshot.
        InvalidImportPassword: Wrong password or tampered bundle.
    """
    if not import_password:
        raise ValueError("Import password is required")
    if isinstance(bundle, (str, bytes)):
        bundle = ExportBundle.from_json(bundle)
    elif not isinstance(bundle, ExportBundle):
        bundle = ExportBundle.from_mapping(bundle)
    plaintext = await asyncio.to_thread(_decrypt_bundle, import_password, bundle, config)
    imported = parse_snapshot(plaintext)
    logger.info(
        "Export bundle decrypted: %d item(s), %d folder(s)",
        len(imported.items), len(imported.folders),
    )
    return imported
