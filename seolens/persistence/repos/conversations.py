from __future__ import annotations

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from seolens.domain.models import AiConversation
from seolens.domain.query import ConversationTurn
from seolens.persistence.guards import require_tenant_id, tenant_predicate


async def add_turns(session: AsyncSession, turns: Iterable[ConversationTurn]) -> list[AiConversation]:
    rows = []
    for turn in turns:
        require_tenant_id(turn.tenant_id)
        rows.append(
            AiConversation(
                user_id=turn.tenant_id,
                session_id=turn.session_id,
                role=str(turn.role),
                content=turn.content,
                sql_generated=turn.sql_generated,
                chart_type=turn.chart_type,
                model_used=turn.model_used,
                provider=turn.provider_used,
                created_at=turn.timestamp,
            )
        )
    session.add_all(rows)
    return rows


async def list_turns(session: AsyncSession, tenant_id: str, session_id: str) -> list[AiConversation]:
    result = await session.execute(
        select(AiConversation)
        .where(tenant_predicate(AiConversation, tenant_id))
        .where(AiConversation.session_id == session_id)
        .order_by(AiConversation.created_at.asc())
    )
    return list(result.scalars().all())
