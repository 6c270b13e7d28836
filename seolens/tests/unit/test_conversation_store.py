from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from seolens.domain.query import ConversationTurn, Role
from seolens.persistence.db import SessionLocal
from seolens.services.analytics.conversation import ConversationStore, new_session_id


def _turns(tenant_id: str, session_id: str) -> list[ConversationTurn]:
    asked_at = datetime(2026, 10, 5, 12, 0, tzinfo=timezone.utc)
    return [
        ConversationTurn(tenant_id=tenant_id, session_id=session_id, role=Role.USER, content="Top pages?", timestamp=asked_at),
        ConversationTurn(
            tenant_id=tenant_id,
            session_id=session_id,
            role=Role.ASSISTANT,
            content="The home page leads.",
            sql_generated="SELECT page_path FROM ga_data WHERE user_id = 'u1'",
            chart_type="table",
            model_used="gpt-4o",
            provider_used="openai",
            timestamp=asked_at + timedelta(seconds=2),
        ),
    ]


def _unreachable_factory():
    raise ConnectionRefusedError("db unreachable")


def _failing_factory():
    raise OperationalError("INSERT INTO ai_conversations", {}, Exception("database is locked"))


def test_new_session_ids_are_unique() -> None:
    assert new_session_id() != new_session_id()


@pytest.mark.asyncio
async def test_append_then_history_in_order() -> None:
    store = ConversationStore(SessionLocal)
    await store.append("u1", "s1", _turns("u1", "s1"))
    await store.append("u2", "s1", _turns("u2", "s1"))

    history = await store.history("u1", "s1")
    assert [turn.role for turn in history] == [Role.USER, Role.ASSISTANT]
    assert history[1].sql_generated.startswith("SELECT")
    assert history[1].provider_used == "openai"
    assert all(turn.tenant_id == "u1" for turn in history)


@pytest.mark.asyncio
async def test_append_failure_is_logged_and_swallowed(caplog: pytest.LogCaptureFixture) -> None:
    store = ConversationStore(_failing_factory)  # type: ignore[arg-type]
    with caplog.at_level(logging.WARNING, logger="seolens.services.analytics.conversation"):
        await store.append("u1", "s1", _turns("u1", "s1"))
    assert "conversation_append_failed" in caplog.text


@pytest.mark.asyncio
async def test_non_database_errors_are_logged_and_swallowed(caplog: pytest.LogCaptureFixture) -> None:
    store = ConversationStore(_unreachable_factory)  # type: ignore[arg-type]
    with caplog.at_level(logging.WARNING, logger="seolens.services.analytics.conversation"):
        await store.append("u1", "s1", _turns("u1", "s1"))
    assert "conversation_append_failed" in caplog.text
    assert "ConnectionRefusedError" in caplog.text


@pytest.mark.asyncio
@pytest.mark.parametrize(("tenant_id", "session_id"), [("u2", "s1"), ("u1", "s2")])
async def test_turns_for_another_tenant_or_session_are_not_written(
    caplog: pytest.LogCaptureFixture, tenant_id: str, session_id: str
) -> None:
    store = ConversationStore(SessionLocal)
    with caplog.at_level(logging.WARNING, logger="seolens.services.analytics.conversation"):
        await store.append("u1", "s1", _turns(tenant_id, session_id))

    assert "conversation_append_rejected" in caplog.text
    assert await store.history("u1", "s1") == []
    assert await store.history(tenant_id, session_id) == []
