from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from typing import Any, Protocol

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from seolens.core.config import get_settings
from seolens.core.errors import ExecutionError
from seolens.domain.query import ExecutionResult
from seolens.services.telemetry import record_external_call


logger = logging.getLogger(__name__)


_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


class ReadOnlyChannel(Protocol):
    async def fetch(self, sql: str) -> list[dict[str, Any]]:
        ...


def _is_sqlite(engine: AsyncEngine) -> bool:
    return engine.dialect.name == "sqlite"


class ReadOnlyTransactionChannel:
    """Run the statement on a dedicated connection inside a transaction that cannot write."""

    def __init__(self, engine: AsyncEngine, *, statement_timeout_ms: int | None = None) -> None:
        self._engine = engine
        self._statement_timeout_ms = statement_timeout_ms

    async def fetch(self, sql: str) -> list[dict[str, Any]]:
        async with self._engine.connect() as conn:
            if _is_sqlite(self._engine):
                return await self._fetch_sqlite(conn, sql)
            trans = await conn.begin()
            try:
                await conn.exec_driver_sql("SET TRANSACTION READ ONLY")
                if self._statement_timeout_ms:
                    await conn.exec_driver_sql(f"SET LOCAL statement_timeout = {int(self._statement_timeout_ms)}")
                result = await conn.exec_driver_sql(sql)
                return [dict(row._mapping) for row in result]
            finally:
                # Nothing here may persist, even a no-op.
                await trans.rollback()

    @staticmethod
    async def _fetch_sqlite(conn: AsyncConnection, sql: str) -> list[dict[str, Any]]:
        await conn.exec_driver_sql("PRAGMA query_only = ON")
        try:
            result = await conn.exec_driver_sql(sql)
            return [dict(row._mapping) for row in result]
        finally:
            await conn.rollback()
            # Pooled connection goes back writable for the rest of the app.
            await conn.exec_driver_sql("PRAGMA query_only = OFF")


class StoredProcedureChannel:
    """Delegate execution to a server-side read-only function returning a JSON array."""

    def __init__(self, engine: AsyncEngine, *, function_name: str = "execute_readonly_query") -> None:
        if not _IDENTIFIER.match(function_name):
            raise ValueError(f"invalid function name: {function_name!r}")
        self._engine = engine
        self._function_name = function_name

    async def fetch(self, sql: str) -> list[dict[str, Any]]:
        statement = text(f"SELECT {self._function_name}(:query_text) AS rows")
        async with self._engine.connect() as conn:
            try:
                result = await conn.execute(statement, {"query_text": sql})
                payload = result.scalar()
            finally:
                await conn.rollback()
        if payload is None:
            return []
        if isinstance(payload, (str, bytes)):
            payload = json.loads(payload)
        if not isinstance(payload, list) or not all(isinstance(row, dict) for row in payload):
            raise ExecutionError("read-only function returned an unexpected payload")
        return payload


def build_channel(engine: AsyncEngine) -> ReadOnlyChannel:
    settings = get_settings()
    if settings.query_channel == "rpc":
        return StoredProcedureChannel(engine, function_name=settings.query_rpc_function)
    if settings.query_channel != "transaction":
        raise ValueError(f"unknown query channel: {settings.query_channel}")
    return ReadOnlyTransactionChannel(engine, statement_timeout_ms=settings.query_timeout_ms)


def _engine_message(exc: SQLAlchemyError) -> str:
    # The driver error is what the user can act on; drop SQLAlchemy's wrapper text.
    orig = getattr(exc, "orig", None)
    message = str(orig) if orig is not None else str(exc)
    return message.strip().splitlines()[0] if message.strip() else type(exc).__name__


class QueryExecutor:
    def __init__(self, channel: ReadOnlyChannel, *, timeout_ms: int | None = None) -> None:
        self._channel = channel
        self._timeout_ms = timeout_ms if timeout_ms is not None else get_settings().query_timeout_ms

    async def execute(self, sql: str) -> ExecutionResult:
        start = time.monotonic()
        try:
            rows = await asyncio.wait_for(self._channel.fetch(sql), timeout=self._timeout_ms / 1000.0)
        except TimeoutError as exc:
            record_external_call(integration="db.readonly", latency_ms=_elapsed_ms(start), success=False)
            logger.warning("analytics_query_timeout timeout_ms=%s", self._timeout_ms)
            raise ExecutionError("Query timed out") from exc
        except SQLAlchemyError as exc:
            record_external_call(integration="db.readonly", latency_ms=_elapsed_ms(start), success=False)
            message = _engine_message(exc)
            logger.info("analytics_query_failed error=%s", type(exc).__name__)
            raise ExecutionError(message) from exc
        except ValueError as exc:
            record_external_call(integration="db.readonly", latency_ms=_elapsed_ms(start), success=False)
            raise ExecutionError("read-only function returned invalid JSON") from exc
        record_external_call(integration="db.readonly", latency_ms=_elapsed_ms(start), success=True)
        return ExecutionResult(rows=rows)


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000.0
