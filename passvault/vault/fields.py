"""
Field Cipher — AES-256-GCM encryption of a single secret string.

Storage shape of an encrypted field::

    {"ciphertext": "<base64 ciphertext+tag>", "iv": [12 byte integers]}

Decryption never raises for a bad field. Any failure (wrong key, corrupted
ciphertext, truncated nonce, tampered tag, invalid UTF-8) is returned as a
failed ``FieldResult`` so one broken field cannot hide the rest of the vault.
"""
import base64
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional, Union

from cryptography.exceptions import InvalidTag
from pydantic import BaseModel, ValidationError

from ..exceptions import FieldDecryptFailure
from .crypto import VaultKey, seal, unseal

logger = logging.getLogger("passvault.vault")


class EncryptedField(BaseModel):
    """One encrypted secret attribute, as persisted by the storage layer.

    Shape is not length-checked on load: a malformed nonce or ciphertext is
    reported by ``decrypt_field`` as a per-field failure.
    """

    ciphertext: str
    iv: list[int]

    model_config = {"frozen": True, "extra": "ignore"}

    @classmethod
    def from_parts(cls, nonce: bytes, ciphertext: bytes) -> "EncryptedField":
        return cls(
            ciphertext=base64.b64encode(ciphertext).decode("ascii"),
            iv=list(nonce),
        )

    @property
    def nonce(self) -> bytes:
        """Nonce as bytes. Raises ValueError for out-of-range integers."""
        return bytes(self.iv)

    @property
    def ciphertext_bytes(self) -> bytes:
        """Ciphertext (tag appended). Raises binascii.Error for bad base64."""
        return base64.b64decode(self.ciphertext, validate=True)

    def to_dict(self) -> dict:
        return {"ciphertext": self.ciphertext, "iv": list(self.iv)}


@dataclass(frozen=True, slots=True)
class FieldResult:
    """Outcome of decrypting one field: either a value or a failure."""

    value: Optional[str] = None
    error: Optional[FieldDecryptFailure] = None

    @classmethod
    def success(cls, value: str) -> "FieldResult":
        return cls(value=value)

    @classmethod
    def failure(cls, reason: str, field: Optional[str] = None) -> "FieldResult":
        return cls(error=FieldDecryptFailure(reason, field))

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> str:
        """Return the plaintext or raise the recorded FieldDecryptFailure."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    def value_or(self, default: Any = None) -> Any:
        return default if self.error is not None else self.value


FieldInput = Union[EncryptedField, Mapping, None]


async def encrypt_field(key: VaultKey, plaintext: str) -> EncryptedField:
    """Encrypt one string under the vault key with a fresh random nonce.

    Args:
        key: Live vault key.
        plaintext: Secret value; the empty string is a valid value.

    Returns:
        EncryptedField with base64 ciphertext and the 12-byte nonce.
    """
    if not isinstance(plaintext, str):
        raise TypeError(f"Field plaintext must be str, got {type(plaintext).__name__}")
    nonce, ciphertext = seal(key, plaintext.encode("utf-8"))
    return EncryptedField.from_parts(nonce, ciphertext)


def _failed(reason: str, name: Optional[str]) -> FieldResult:
    logger.warning("Field decrypt failed: field=%s reason=%s", name or "-", reason)
    return FieldResult.failure(reason, name)


async def decrypt_field(
    key: VaultKey,
    field: FieldInput,
    name: Optional[str] = None,
) -> FieldResult:
    """Decrypt one stored field.

    Args:
        key: Live vault key.
        field: EncryptedField, or its stored mapping form.
        name: Field name, used only for the failure report and logs.

    Returns:
        FieldResult holding the plaintext, or a FieldDecryptFailure.
    """
    if field is None:
        return _failed("field is missing", name)
    if not isinstance(field, EncryptedField):
        if not isinstance(field, Mapping):
            return _failed("field has an invalid shape", name)
        try:
            field = EncryptedField.model_validate(dict(field))
        except ValidationError:
            return _failed("field has an invalid shape", name)
    if not field.ciphertext:
        return _failed("ciphertext is empty", name)
    if not field.iv:
        return _failed("nonce is missing", name)
    try:
        plaintext = unseal(key, field.nonce, field.ciphertext_bytes)
        return FieldResult.success(plaintext.decode("utf-8"))
    except InvalidTag:
        return _failed("authentication failed", name)
    except ValueError as err:
        # binascii.Error and UnicodeDecodeError are ValueError subclasses
        return _failed(str(err), name)
