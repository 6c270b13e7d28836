from __future__ import annotations

import os
import tempfile
from pathlib import Path

# Point the module-level engine at a throwaway SQLite file before seolens is imported.
_DB_DIR = tempfile.mkdtemp(prefix="seolens-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{Path(_DB_DIR) / 'seolens.db'}"
os.environ["ENCRYPTION_KEY"] = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"
os.environ.setdefault("LLM_RETRY_BACKOFF_MS", "1")

import pytest  # noqa: E402

from seolens.core.config import get_settings  # noqa: E402
from seolens.domain.models import Base  # noqa: E402
from seolens.persistence.db import engine  # noqa: E402
from seolens.services import telemetry  # noqa: E402
from seolens.services.crypto.vault import CredentialVault  # noqa: E402


TEST_ENCRYPTION_KEY = os.environ["ENCRYPTION_KEY"]


@pytest.fixture(autouse=True)
async def database() -> None:
    # Fresh schema per test; dispose so no pooled connection outlives its event loop.
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(autouse=True)
def reset_process_state() -> None:
    telemetry.reset()
    yield
    # Tests that monkeypatch env vars must not leak cached settings into the next test.
    get_settings.cache_clear()
    telemetry.reset()


@pytest.fixture
def vault() -> CredentialVault:
    return CredentialVault.from_hex(TEST_ENCRYPTION_KEY)

