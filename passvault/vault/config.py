"""
Vault Configuration — Key-derivation parameters and validated settings.

Reads optional overrides from environment variables:
    VAULT_PBKDF2_ITERATIONS = <int>   (login-password PBKDF2 rounds)
    VAULT_SALT_LENGTH       = <int>   (bytes of per-user salt)
    VAULT_SCRYPT_N / VAULT_SCRYPT_R / VAULT_SCRYPT_P = <int>
    VAULT_REKEY_BATCH_SIZE  = <int>

Security Note:
    Changing ``pbkdf2_iterations`` for an existing user makes their vault
    key underivable. The iteration count is part of the stored-data format.
    Likewise the scrypt parameters are part of the export bundle format and
    are not recorded in the bundle: a bundle only imports where the same
    ``scrypt_n``/``scrypt_r``/``scrypt_p`` are configured. Otherwise import
    fails as ``InvalidImportPassword``.
"""
import os
import logging
from typing import Optional

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("passvault.vault")

DEFAULT_PBKDF2_ITERATIONS = 100_000
DEFAULT_SALT_LENGTH = 16
# scrypt cost parameters used by the export bundle format.
DEFAULT_SCRYPT_N = 16384
DEFAULT_SCRYPT_R = 8
DEFAULT_SCRYPT_P = 1
DEFAULT_REKEY_BATCH_SIZE = 100

_ENV_FIELDS = {
    "VAULT_PBKDF2_ITERATIONS": "pbkdf2_iterations",
    "VAULT_SALT_LENGTH": "salt_length",
    "VAULT_SCRYPT_N": "scrypt_n",
    "VAULT_SCRYPT_R": "scrypt_r",
    "VAULT_SCRYPT_P": "scrypt_p",
    "VAULT_REKEY_BATCH_SIZE": "rekey_batch_size",
}


def read_int_env(name: str) -> Optional[int]:
    """Read an integer environment variable.

    Returns:
        The parsed value, or None if the variable is unset or blank.

    Raises:
        ValueError: If the value is not a valid integer.
    """
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


class VaultConfig(BaseModel):
    """Validated vault engine configuration."""

    pbkdf2_iterations: int = Field(default=DEFAULT_PBKDF2_ITERATIONS, ge=1000)
    salt_length: int = Field(default=DEFAULT_SALT_LENGTH, ge=16, le=64)
    scrypt_n: int = Field(default=DEFAULT_SCRYPT_N, gt=1)
    scrypt_r: int = Field(default=DEFAULT_SCRYPT_R, ge=1)
    scrypt_p: int = Field(default=DEFAULT_SCRYPT_P, ge=1)
    rekey_batch_size: int = Field(default=DEFAULT_REKEY_BATCH_SIZE, ge=1, le=10_000)

    model_config = {"frozen": True}

    @field_validator("scrypt_n")
    @classmethod
    def validate_scrypt_n(cls, v: int) -> int:
        """scrypt requires N to be a power of two."""
        if v & (v - 1):
            raise ValueError(f"scrypt_n must be a power of two, got {v}")
        return v

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig from ``VAULT_*`` environment variables.

        Unset variables keep their defaults.

        Returns:
            Populated VaultConfig instance.
        """
        values = {}
        for env_name, field_name in _ENV_FIELDS.items():
            value = read_int_env(env_name)
            if value is not None:
                values[field_name] = value
        if values:
            logger.debug("Vault config overrides from environment: %s", sorted(values))
        return cls(**values)


_default_config: Optional[VaultConfig] = None


def get_config() -> VaultConfig:
    """Return the process default configuration, loaded once from the environment."""
    global _default_config
    if _default_config is None:
        _default_config = VaultConfig.from_env()
    return _default_config


def reset_config() -> None:
    """Forget the cached default configuration (next call re-reads the environment)."""
    global _default_config
    _default_config = None
