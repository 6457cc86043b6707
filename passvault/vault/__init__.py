"""Vault engine — Client-side encryption of password-manager secrets.

Security Note (Threat Model):
    The vault key is derived from the login password and lives only in the
    memory of the session that unlocked it. The server stores the salt and
    ciphertext, never the key. A memory dump of an unlocked session can
    expose the key; this is an accepted limitation.
"""

from .config import VaultConfig, get_config
from .crypto import (
    VaultKey,
    base64_to_salt,
    derive_export_key_sync,
    derive_key,
    derive_key_sync,
    generate_salt,
    salt_to_base64,
)
from .fields import EncryptedField, FieldResult, decrypt_field, encrypt_field
from .items import (
    SECRET_FIELDS,
    FolderRecord,
    VaultItem,
    VaultItemRecord,
    decrypt_item,
    encrypt_item,
    open_item,
    seal_item,
)
from .export import (
    ExportBundle,
    ImportedVault,
    export_bundle,
    export_filename,
    import_bundle,
)
from .session import VaultKeyContext, ensure_salt, new_user_salt, unlock_from_response
from .store import MemoryVaultStore, PgVaultStore, VaultStore
from .transfer import ImportSummary, export_vault, import_vault, merge_import
from .key_rotation import rotate_vault_key

__all__ = [
    "VaultConfig",
    "get_config",
    "VaultKey",
    "base64_to_salt",
    "derive_export_key_sync",
    "derive_key",
    "derive_key_sync",
    "generate_salt",
    "salt_to_base64",
    "EncryptedField",
    "FieldResult",
    "decrypt_field",
    "encrypt_field",
    "SECRET_FIELDS",
    "FolderRecord",
    "VaultItem",
    "VaultItemRecord",
    "decrypt_item",
    "encrypt_item",
    "open_item",
    "seal_item",
    "ExportBundle",
    "ImportedVault",
    "export_bundle",
    "export_filename",
    "import_bundle",
    "VaultKeyContext",
    "ensure_salt",
    "new_user_salt",
    "unlock_from_response",
    "MemoryVaultStore",
    "PgVaultStore",
    "VaultStore",
    "ImportSummary",
    "export_vault",
    "import_vault",
    "merge_import",
    "rotate_vault_key",
]
