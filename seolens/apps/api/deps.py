from __future__ import annotations

from functools import lru_cache
from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from seolens.core.config import get_settings
from seolens.persistence.db import SessionLocal, engine, get_session
from seolens.services.analytics.conversation import ConversationStore
from seolens.services.analytics.executor import QueryExecutor, build_channel
from seolens.services.analytics.pipeline import AnalyticsPipeline
from seolens.services.crypto.vault import CredentialVault


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


@lru_cache
def _vault_for(encryption_key: str | None) -> CredentialVault:
    return CredentialVault.from_hex(encryption_key)


def get_vault() -> CredentialVault:
    # Load the key once per configured value; a settings cache clear picks up rotations.
    return _vault_for(get_settings().encryption_key)


def get_pipeline(vault: CredentialVault = Depends(get_vault)) -> AnalyticsPipeline:
    return AnalyticsPipeline(
        vault=vault,
        session_factory=SessionLocal,
        executor=QueryExecutor(build_channel(engine)),
        store=ConversationStore(SessionLocal),
    )
