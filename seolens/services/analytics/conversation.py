from __future__ import annotations

import logging
from typing import Sequence
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from seolens.core.errors import PersistenceError
from seolens.domain.query import ConversationTurn, Role
from seolens.persistence.guards import TenantPredicateError
from seolens.persistence.repos import conversations as conversations_repo


logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return str(uuid4())


class ConversationStore:
    """Append-only log of question/answer turns."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _write(self, turns: Sequence[ConversationTurn]) -> None:
        try:
            async with self._session_factory() as session:
                await conversations_repo.add_turns(session, turns)
                await session.commit()
        except (SQLAlchemyError, TenantPredicateError) as exc:
            raise PersistenceError(type(exc).__name__) from exc

    async def append(self, tenant_id: str, session_id: str, turns: Sequence[ConversationTurn]) -> None:
        foreign = [turn for turn in turns if turn.tenant_id != tenant_id or turn.session_id != session_id]
        if foreign:
            logger.warning(
                "conversation_append_rejected tenant_id=%s session_id=%s foreign_turns=%s",
                tenant_id,
                session_id,
                len(foreign),
            )
            return
        # Best-effort: the user already has an answer, so a failed write is only logged.
        try:
            await self._write(turns)
        except Exception as exc:  # noqa: BLE001 - any store outage leaves the answer intact
            error = str(exc) if isinstance(exc, PersistenceError) else type(exc).__name__
            logger.warning(
                "conversation_append_failed tenant_id=%s session_id=%s error=%s",
                tenant_id,
                session_id,
                error,
            )

    async def history(self, tenant_id: str, session_id: str) -> list[ConversationTurn]:
        async with self._session_factory() as session:
            rows = await conversations_repo.list_turns(session, tenant_id, session_id)
        return [
            ConversationTurn(
                tenant_id=row.user_id,
                session_id=row.session_id,
                role=Role(row.role),
                content=row.content,
                sql_generated=row.sql_generated,
                chart_type=row.chart_type,
                model_used=row.model_used,
                provider_used=row.provider,
                timestamp=row.created_at,
            )
            for row in rows
        ]
