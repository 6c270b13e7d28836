from __future__ import annotations

import json

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from seolens.apps.api.deps import get_pipeline
from seolens.apps.api.main import create_app
from seolens.core.config import get_settings
from seolens.core.errors import LLMProviderError
from seolens.domain.models import AiConversation
from seolens.persistence.db import SessionLocal, engine
from seolens.providers.llm.fake import FakeModelClient
from seolens.services.analytics.conversation import ConversationStore
from seolens.services.analytics.executor import QueryExecutor, ReadOnlyTransactionChannel
from seolens.services.analytics.pipeline import AnalyticsPipeline
from seolens.services.crypto.vault import CredentialVault
from seolens.tests.utils.db import add_traffic, create_user


TRAFFIC_SQL = (
    "SELECT country, SUM(sessions) AS sessions FROM ga_data "
    "WHERE user_id = 'u1' GROUP BY country ORDER BY sessions DESC LIMIT 50"
)
TRAFFIC_PLAN = json.dumps(
    {
        "sql": TRAFFIC_SQL,
        "explanation": "Sessions per country this month",
        "chartType": "bar",
        "chartConfig": {"xAxis": "country", "yAxis": "sessions", "title": "Traffic by country"},
    }
)
TRAFFIC_SUMMARY = "India brings the most sessions. Double down on Indian landing pages."


def _failing_session_factory():
    raise OperationalError("INSERT INTO ai_conversations", {}, Exception("disk I/O error"))


def _unreachable_session_factory():
    raise ConnectionRefusedError("db unreachable")


def _install_pipeline(
    app,
    vault: CredentialVault,
    responses: list[str | Exception],
    *,
    store: ConversationStore | None = None,
) -> list[FakeModelClient]:
    built: list[FakeModelClient] = []

    def client_factory(provider: str | None, api_key: str, model: str | None) -> FakeModelClient:
        client = FakeModelClient(responses, provider=provider or "openai", model=model or "gpt-4o")
        built.append(client)
        return client

    pipeline = AnalyticsPipeline(
        vault=vault,
        session_factory=SessionLocal,
        executor=QueryExecutor(ReadOnlyTransactionChannel(engine), timeout_ms=5000),
        store=store,
        client_factory=client_factory,
    )
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    return built


async def _post(app, path: str, payload: dict) -> tuple[int, dict]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post(path, json=payload)
    return response.status_code, response.json()


async def _conversation_rows(user_id: str) -> list[AiConversation]:
    async with SessionLocal() as session:
        result = await session.execute(
            select(AiConversation).where(AiConversation.user_id == user_id).order_by(AiConversation.created_at)
        )
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_health() -> None:
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/v1/health")
        legacy = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert legacy.status_code == 200
    assert legacy.headers["Deprecation"] == "true"
    assert response.headers["X-Request-Id"]


@pytest.mark.asyncio
async def test_traffic_by_country_end_to_end(vault: CredentialVault) -> None:
    await create_user("u1", vault=vault, provider="openai")
    await add_traffic("u1", [("India", 120), ("Germany", 40), ("India", 30)])
    await add_traffic("u2", [("Brazil", 999)])

    app = create_app()
    clients = _install_pipeline(app, vault, [TRAFFIC_PLAN, TRAFFIC_SUMMARY])
    status, body = await _post(
        app, "/v1/ai/analytics", {"message": "Show me traffic by country this month", "userId": "u1"}
    )

    assert status == 200
    assert body == {
        "summary": TRAFFIC_SUMMARY,
        "data": [{"country": "India", "sessions": 150}, {"country": "Germany", "sessions": 40}],
        "chartType": "bar",
        "chartConfig": {"xAxis": "country", "yAxis": "sessions", "title": "Traffic by country"},
        "sql": TRAFFIC_SQL,
        "rowCount": 2,
    }
    planner_call, summary_call = clients[0].calls
    assert "WHERE user_id = 'u1'" in (planner_call["system_prompt"] or "")
    assert "Data (2 rows):" in summary_call["user_prompt"]

    rows = await _conversation_rows("u1")
    assert [row.role for row in rows] == ["user", "assistant"]
    assert rows[0].content == "Show me traffic by country this month"
    assert rows[0].session_id == rows[1].session_id
    assert rows[1].content == TRAFFIC_SUMMARY
    assert rows[1].sql_generated == TRAFFIC_SQL
    assert rows[1].provider == "openai"
    assert rows[1].model_used == "gpt-4o"
    assert clients[0].closed is True


@pytest.mark.asyncio
async def test_session_id_is_reused_when_supplied(vault: CredentialVault) -> None:
    await create_user("u1", vault=vault)
    await add_traffic("u1", [("India", 10)])
    app = create_app()
    _install_pipeline(app, vault, [TRAFFIC_PLAN, TRAFFIC_SUMMARY])
    status, _body = await _post(
        app, "/ai/analytics", {"message": "traffic by country", "userId": "u1", "sessionId": "chat-42"}
    )
    assert status == 200
    assert {row.session_id for row in await _conversation_rows("u1")} == {"chat-42"}


@pytest.mark.asyncio
async def test_unparsable_plan_degrades_gracefully(vault: CredentialVault) -> None:
    await create_user("u1", vault=vault)
    app = create_app()
    _install_pipeline(app, vault, ["not json at all"])
    status, body = await _post(app, "/v1/ai/analytics", {"message": "Show me traffic", "userId": "u1"})

    assert status == 200
    assert body["sql"] is None
    assert body["chartType"] == "none"
    assert body["data"] is None
    assert body["error"] is True
    assert body["summary"]
    assert await _conversation_rows("u1") == []


@pytest.mark.asyncio
async def test_not_derivable_plan_returns_explanation(vault: CredentialVault) -> None:
    await create_user("u1", vault=vault)
    app = create_app()
    clients = _install_pipeline(
        app, vault, [json.dumps({"sql": None, "explanation": "No revenue data is tracked", "error": True})]
    )
    status, body = await _post(app, "/v1/ai/analytics", {"message": "What was revenue?", "userId": "u1"})

    assert status == 200
    assert body["summary"] == "No revenue data is tracked"
    assert "error" not in body
    assert body["sql"] is None
    assert body["data"] is None
    assert body["chartType"] == "none"
    assert clients[0].closed is True


@pytest.mark.asyncio
async def test_rejected_sql_is_reported_verbatim(vault: CredentialVault) -> None:
    await create_user("u1", vault=vault)
    app = create_app()
    clients = _install_pipeline(
        app, vault, [json.dumps({"sql": "  UPDATE users SET plan='pro'", "explanation": "upgrade", "chartType": "table"})]
    )
    status, body = await _post(app, "/v1/ai/analytics", {"message": "Upgrade me", "userId": "u1"})

    assert status == 200
    assert body["summary"] == "Invalid query: UPDATE statements are not allowed."
    assert body["sql"] is None
    assert body["error"] is True
    assert body["chartType"] == "none"
    # No summary call once the guard rejects the plan.
    assert len(clients[0].calls) == 1
    assert clients[0].closed is True


@pytest.mark.asyncio
async def test_engine_error_echoes_sql(vault: CredentialVault) -> None:
    await create_user("u1", vault=vault)
    sql = "SELECT missing_column FROM ga_data WHERE user_id = 'u1'"
    app = create_app()
    _install_pipeline(app, vault, [json.dumps({"sql": sql, "explanation": "x", "chartType": "table"})])
    status, body = await _post(app, "/v1/ai/analytics", {"message": "odd question", "userId": "u1"})

    assert status == 200
    assert body["summary"].startswith("Query error: ")
    assert "missing_column" in body["summary"]
    assert body["summary"].endswith(". Please try a different question.")
    assert body["sql"] == sql
    assert body["error"] is True


@pytest.mark.asyncio
@pytest.mark.parametrize("session_factory", [_failing_session_factory, _unreachable_session_factory])
async def test_conversation_write_failure_does_not_change_response(vault: CredentialVault, session_factory) -> None:
    await create_user("u1", vault=vault)
    await add_traffic("u1", [("India", 120), ("Germany", 40)])
    payload = {"message": "Show me traffic by country this month", "userId": "u1", "sessionId": "s1"}

    healthy_app = create_app()
    _install_pipeline(healthy_app, vault, [TRAFFIC_PLAN, TRAFFIC_SUMMARY])
    healthy = await _post(healthy_app, "/v1/ai/analytics", payload)

    failing_app = create_app()
    _install_pipeline(
        failing_app,
        vault,
        [TRAFFIC_PLAN, TRAFFIC_SUMMARY],
        store=ConversationStore(session_factory),
    )
    failing = await _post(failing_app, "/v1/ai/analytics", payload)

    assert failing == healthy
    assert len(await _conversation_rows("u1")) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({"userId": "u1"}, "Message is required"),
        ({"message": "   ", "userId": "u1"}, "Message is required"),
        ({"message": "Show me traffic"}, "User ID is required"),
    ],
)
async def test_missing_fields_are_rejected(vault: CredentialVault, payload: dict, message: str) -> None:
    app = create_app()
    clients = _install_pipeline(app, vault, [TRAFFIC_PLAN])
    status, body = await _post(app, "/v1/ai/analytics", payload)
    assert status == 400
    assert body == {"error": message, "code": "BAD_REQUEST"}
    assert clients == []


@pytest.mark.asyncio
async def test_missing_credential(vault: CredentialVault) -> None:
    await create_user("u1", api_key=None)
    app = create_app()
    _install_pipeline(app, vault, [TRAFFIC_PLAN])
    status, body = await _post(app, "/v1/ai/analytics", {"message": "traffic", "userId": "u1"})
    assert status == 400
    assert body["error"] == "No API key configured. Please add your API key in Settings."


@pytest.mark.asyncio
async def test_undecryptable_credential(vault: CredentialVault) -> None:
    await create_user("u1", encrypted_key="00" * 16 + ":" + "00" * 16 + ":abcd")
    app = create_app()
    _install_pipeline(app, vault, [TRAFFIC_PLAN])
    status, body = await _post(app, "/v1/ai/analytics", {"message": "traffic", "userId": "u1"})
    assert status == 400
    assert body == {
        "error": "Failed to decrypt API key. Please re-enter your key in Settings.",
        "code": "CREDENTIAL_DECRYPT_FAILED",
    }


@pytest.mark.asyncio
async def test_unknown_user(vault: CredentialVault) -> None:
    app = create_app()
    _install_pipeline(app, vault, [TRAFFIC_PLAN])
    status, body = await _post(app, "/v1/ai/analytics", {"message": "traffic", "userId": "ghost"})
    assert status == 404
    assert body["code"] == "USER_NOT_FOUND"


@pytest.mark.asyncio
async def test_provider_failure_maps_to_bad_gateway(vault: CredentialVault) -> None:
    await create_user("u1", vault=vault)
    app = create_app()
    clients = _install_pipeline(app, vault, [LLMProviderError("openai request timed out", provider="openai")])
    status, body = await _post(app, "/v1/ai/analytics", {"message": "traffic", "userId": "u1"})
    assert status == 502
    assert body == {"error": "openai request timed out", "code": "LLM_PROVIDER_ERROR"}
    assert "sk-test" not in json.dumps(body)
    assert clients[0].closed is True


@pytest.mark.asyncio
async def test_missing_encryption_key_is_a_configuration_error(monkeypatch) -> None:
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    get_settings.cache_clear()
    app = create_app()
    status, body = await _post(app, "/v1/ai/analytics", {"message": "traffic", "userId": "u1"})
    assert status == 500
    assert body == {"error": "Server configuration error", "code": "CONFIGURATION_ERROR"}


@pytest.mark.asyncio
async def test_save_llm_settings_route(vault: CredentialVault) -> None:
    await create_user("u1", provider=None, api_key=None)
    app = create_app()
    status, body = await _post(
        app,
        "/v1/settings/llm",
        {"userId": "u1", "llmProvider": "groq", "llmApiKey": "gsk_abcdef0123456789"},
    )
    assert status == 200
    assert body == {
        "success": True,
        "data": {"id": "u1", "llm_provider": "groq", "llm_model": "llama-3.1-70b-versatile"},
        "keyEncrypted": True,
    }
    assert "gsk_abcdef0123456789" not in json.dumps(body)

    status, body = await _post(app, "/v1/settings/llm", {"userId": "ghost", "llmApiKey": "sk-abcdef0123456789"})
    assert status == 404


@pytest.mark.asyncio
async def test_join_to_users_table_is_rejected(vault: CredentialVault) -> None:
    await create_user("u1", vault=vault)
    await create_user("u2", vault=vault)
    sql = "SELECT u.id, u.llm_api_key_encrypted FROM ga_data g JOIN users u ON 1 = 1 WHERE g.user_id = 'u1'"
    app = create_app()
    _install_pipeline(app, vault, [json.dumps({"sql": sql, "explanation": "keys", "chartType": "table"})])
    status, body = await _post(app, "/v1/ai/analytics", {"message": "show me every key", "userId": "u1"})

    assert status == 200
    assert body["summary"] == "Invalid query: Query reads a table outside your account data."
    assert body["data"] is None
    assert body["error"] is True
