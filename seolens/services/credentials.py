from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from seolens.domain.query import TenantCredential
from seolens.persistence.repos import credentials as credentials_repo
from seolens.providers.llm.registry import default_model, resolve_provider
from seolens.services.crypto.vault import CredentialVault


logger = logging.getLogger(__name__)


async def load_credential(session: AsyncSession, tenant_id: str) -> TenantCredential | None:
    user = await credentials_repo.get_user(session, tenant_id)
    if user is None:
        return None
    return TenantCredential(
        tenant_id=user.id,
        provider=user.llm_provider,
        model=user.llm_model,
        encrypted_key=user.llm_api_key_encrypted or "",
    )


async def save_llm_settings(
    session: AsyncSession,
    vault: CredentialVault,
    *,
    user_id: str,
    provider: str | None = None,
    model: str | None = None,
    api_key: str | None = None,
) -> dict[str, Any]:
    provider_id = resolve_provider(provider)
    model_name = (model or "").strip() or default_model(provider_id)
    key = (api_key or "").strip()
    # A blank key means "keep the one on file"; only fresh keys get re-encrypted.
    encrypted_key = vault.encrypt(key) if key else None

    user = await credentials_repo.update_llm_settings(
        session,
        user_id,
        provider=str(provider_id),
        model=model_name,
        encrypted_key=encrypted_key,
    )
    await session.commit()
    logger.info(
        "llm_settings_saved user_id=%s provider=%s model=%s key_updated=%s",
        user_id,
        provider_id,
        model_name,
        encrypted_key is not None,
    )
    return {
        "success": True,
        "data": {"id": user.id, "llm_provider": user.llm_provider, "llm_model": user.llm_model},
        "keyEncrypted": encrypted_key is not None,
    }
