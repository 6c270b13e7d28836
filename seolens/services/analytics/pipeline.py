from __future__ import annotations

import logging
import time
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from seolens.core.config import get_settings
from seolens.core.errors import CredentialMissingError, DecryptionError, ExecutionError, TenantNotFoundError
from seolens.domain.query import (
    NO_CHART,
    AnalyticsRequest,
    AnalyticsResponse,
    ConversationTurn,
    QueryPlan,
    Role,
)
from seolens.providers.llm.base import ModelClient
from seolens.providers.llm.registry import build_client
from seolens.services.analytics.conversation import ConversationStore, new_session_id
from seolens.services.analytics.executor import QueryExecutor
from seolens.services.analytics.planner import QueryPlanner, is_parse_fallback
from seolens.services.analytics.schema_context import build_schema_context
from seolens.services.analytics.sql_guard import SqlGuard
from seolens.services.analytics.summarizer import Summarizer, default_fallback
from seolens.services.credentials import load_credential
from seolens.services.crypto.vault import CredentialVault
from seolens.services.telemetry import increment_counter


logger = logging.getLogger(__name__)


ClientFactory = Callable[[str | None, str, str | None], ModelClient]

NOT_DERIVABLE_SUMMARY = "Unable to generate query for this request."


def _degraded(summary: str, *, sql: str | None = None, error: bool = True) -> AnalyticsResponse:
    return AnalyticsResponse(summary=summary, data=None, chart_type=NO_CHART, sql=sql, error=error)


class AnalyticsPipeline:
    """Question in, summarized tenant-scoped rows out.

    Terminating failures (missing or undecryptable credential, provider errors,
    configuration) raise for the HTTP layer to map. Expected outcomes such as an
    unparsable plan, a rejected statement or an engine error come back as a
    degraded response with ``error`` set. A plan the model declines to write
    returns its explanation without the flag.
    """

    def __init__(
        self,
        *,
        vault: CredentialVault,
        session_factory: async_sessionmaker[AsyncSession],
        executor: QueryExecutor,
        store: ConversationStore | None = None,
        guard: SqlGuard | None = None,
        client_factory: ClientFactory = build_client,
    ) -> None:
        self._vault = vault
        self._session_factory = session_factory
        self._executor = executor
        self._store = store or ConversationStore(session_factory)
        self._guard = guard or SqlGuard()
        self._client_factory = client_factory
        self._settings = get_settings()

    async def _resolve_client(self, tenant_id: str) -> ModelClient:
        async with self._session_factory() as session:
            credential = await load_credential(session, tenant_id)
        if credential is None:
            raise TenantNotFoundError(f"user {tenant_id} not found")
        if not credential.encrypted_key:
            raise CredentialMissingError("tenant has no stored API key")
        try:
            api_key = self._vault.decrypt(credential.encrypted_key)
        except DecryptionError as exc:
            logger.warning("credential_decrypt_failed tenant_id=%s reason=%s", tenant_id, exc)
            raise
        return self._client_factory(credential.provider, api_key, credential.model)

    async def _schema_context(self, question: str) -> str:
        async with self._session_factory() as session:
            return await build_schema_context(session, question)

    async def run(self, request: AnalyticsRequest, *, request_id: str | None = None) -> AnalyticsResponse:
        client = await self._resolve_client(request.tenant_id)
        try:
            return await self._answer(request, client, request_id=request_id)
        finally:
            await client.aclose()

    async def _answer(
        self, request: AnalyticsRequest, client: ModelClient, *, request_id: str | None
    ) -> AnalyticsResponse:
        start = time.monotonic()
        tenant_id = request.tenant_id
        session_id = request.session_id or new_session_id()
        user_turn = ConversationTurn(
            tenant_id=tenant_id, session_id=session_id, role=Role.USER, content=request.message
        )

        schema_context = await self._schema_context(request.message)
        planner = QueryPlanner(client, max_rows=self._settings.planner_max_rows)
        plan = await planner.plan(request.message, tenant_id, schema_context)
        logger.info(
            "analytics_plan_ready request_id=%s tenant_id=%s provider=%s answerable=%s chart_type=%s",
            request_id,
            tenant_id,
            client.provider,
            plan.is_answerable,
            plan.chart_type,
        )

        if is_parse_fallback(plan):
            increment_counter("analytics_plan_unparsable_total")
            return _degraded(plan.explanation)
        sql = plan.sql
        if sql is None or not plan.is_answerable:
            return _degraded(plan.explanation or NOT_DERIVABLE_SUMMARY, error=False)

        decision = self._guard.validate(sql, tenant_id)
        if not decision.ok:
            increment_counter("analytics_sql_rejected_total")
            logger.warning(
                "analytics_sql_rejected request_id=%s tenant_id=%s reason=%s",
                request_id,
                tenant_id,
                decision.reason,
            )
            return _degraded(f"Invalid query: {decision.reason}.")

        try:
            result = await self._executor.execute(sql)
        except ExecutionError as exc:
            increment_counter("analytics_execution_failed_total")
            return _degraded(f"Query error: {exc}. Please try a different question.", sql=sql)

        summary = await Summarizer(client).summarize(
            request.message,
            result.rows,
            fallback=plan.explanation or default_fallback(result.row_count),
        )
        response = AnalyticsResponse(
            summary=summary,
            data=result.rows,
            chart_type=str(plan.chart_type),
            chart_config=plan.chart_config.to_dict(),
            sql=sql,
            row_count=result.row_count,
        )
        assistant_turn = self._assistant_turn(user_turn, plan, summary, client)
        await self._store.append(tenant_id, session_id, [user_turn, assistant_turn])
        logger.info(
            "analytics_completed request_id=%s tenant_id=%s rows=%s latency_ms=%.1f",
            request_id,
            tenant_id,
            result.row_count,
            (time.monotonic() - start) * 1000.0,
        )
        return response

    @staticmethod
    def _assistant_turn(
        user_turn: ConversationTurn, plan: QueryPlan, summary: str, client: ModelClient
    ) -> ConversationTurn:
        return ConversationTurn(
            tenant_id=user_turn.tenant_id,
            session_id=user_turn.session_id,
            role=Role.ASSISTANT,
            content=summary,
            sql_generated=plan.sql,
            chart_type=str(plan.chart_type),
            model_used=client.model,
            provider_used=client.provider,
        )
