from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from seolens.apps.api.deps import get_db, get_vault
from seolens.services.credentials import save_llm_settings
from seolens.services.crypto.vault import CredentialVault


router = APIRouter(tags=["settings"])


class LlmSettingsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str | None = Field(default=None, alias="userId")
    llm_provider: str | None = Field(default=None, alias="llmProvider")
    llm_model: str | None = Field(default=None, alias="llmModel")
    # Plaintext only in transit; it is encrypted before it reaches the database.
    llm_api_key: str | None = Field(default=None, alias="llmApiKey", repr=False)


@router.post("/settings/llm")
async def save_llm(
    payload: LlmSettingsRequest,
    db: AsyncSession = Depends(get_db),
    vault: CredentialVault = Depends(get_vault),
) -> dict[str, Any]:
    if not payload.user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "BAD_REQUEST", "message": "User ID is required"},
        )
    return await save_llm_settings(
        db,
        vault,
        user_id=payload.user_id,
        provider=payload.llm_provider,
        model=payload.llm_model,
        api_key=payload.llm_api_key,
    )
