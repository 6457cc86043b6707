"""Shared fixtures for vault engine tests."""
import pytest
import pytest_asyncio

from passvault.vault import MemoryVaultStore, VaultKeyContext, derive_key_sync
from passvault.vault.config import reset_config

# Low PBKDF2 cost keeps unit tests fast; scenario tests use the default.
FAST_ITERATIONS = 1000
PASSWORD = "correct horse"


@pytest.fixture(autouse=True)
def _fresh_config():
    """Drop the cached environment config around every test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def salt():
    return bytes(range(16))


@pytest.fixture
def key(salt):
    """Vault key derived from PASSWORD and the fixed salt."""
    return derive_key_sync(PASSWORD, salt, iterations=FAST_ITERATIONS)


@pytest.fixture
def other_key(salt):
    return derive_key_sync("battery staple", salt, iterations=FAST_ITERATIONS)


@pytest.fixture
def store():
    return MemoryVaultStore()


@pytest_asyncio.fixture
async def context(salt):
    """Unlocked key context; its key equals the ``key`` fixture."""
    ctx = VaultKeyContext(user_id="alice", iterations=FAST_ITERATIONS)
    await ctx.derive(PASSWORD, salt)
    yield ctx
    ctx.clear()
