from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from seolens.core.errors import TenantNotFoundError
from seolens.domain.models import User
from seolens.persistence.guards import tenant_predicate


async def get_user(session: AsyncSession, tenant_id: str) -> User | None:
    result = await session.execute(select(User).where(tenant_predicate(User, tenant_id)))
    return result.scalar_one_or_none()


async def update_llm_settings(
    session: AsyncSession,
    tenant_id: str,
    *,
    provider: str,
    model: str,
    encrypted_key: str | None,
) -> User:
    values: dict[str, object] = {
        "llm_provider": provider,
        "llm_model": model,
        "updated_at": datetime.now(timezone.utc),
    }
    # Leave the stored ciphertext untouched when no new key was supplied.
    if encrypted_key is not None:
        values["llm_api_key_encrypted"] = encrypted_key
    result = await session.execute(
        update(User).where(tenant_predicate(User, tenant_id)).values(**values)
    )
    if result.rowcount == 0:
        raise TenantNotFoundError(f"user {tenant_id} not found")
    user = await get_user(session, tenant_id)
    assert user is not None
    await session.refresh(user)
    return user
