from __future__ import annotations

import argparse
import asyncio
import json
import sys

from fastapi.encoders import jsonable_encoder

from seolens.core.config import get_settings
from seolens.core.errors import (
    ConfigurationError,
    CredentialMissingError,
    DecryptionError,
    LLMProviderError,
    TenantNotFoundError,
)
from seolens.domain.query import AnalyticsRequest
from seolens.persistence.db import SessionLocal, engine
from seolens.services.analytics.conversation import ConversationStore
from seolens.services.analytics.executor import QueryExecutor, build_channel
from seolens.services.analytics.pipeline import AnalyticsPipeline
from seolens.services.crypto.vault import CredentialVault


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run one natural-language analytics question end to end for a user."
    )
    parser.add_argument("--user", required=True, help="User (tenant) id")
    parser.add_argument("--message", required=True, help="Question to ask")
    parser.add_argument("--session", default=None, help="Conversation session id")
    parser.add_argument("--show-rows", type=int, default=10, help="Number of rows to print")
    return parser


def _format_error(exc: Exception) -> tuple[int, str]:
    # Map known pipeline failures to stable, actionable messages.
    if isinstance(exc, ConfigurationError):
        return 2, f"CONFIGURATION_ERROR: {exc}"
    if isinstance(exc, TenantNotFoundError):
        return 2, f"USER_NOT_FOUND: {exc}"
    if isinstance(exc, CredentialMissingError):
        return 2, f"CREDENTIAL_MISSING: {exc}"
    if isinstance(exc, DecryptionError):
        return 3, f"CREDENTIAL_DECRYPT_FAILED: {exc}"
    if isinstance(exc, LLMProviderError):
        return 4, f"LLM_PROVIDER_ERROR: {exc}"
    return 1, f"UNKNOWN_ERROR: {exc}"


def build_pipeline() -> AnalyticsPipeline:
    # Use the shared engine and session factory so DB config matches the API container.
    vault = CredentialVault.from_hex(get_settings().encryption_key)
    return AnalyticsPipeline(
        vault=vault,
        session_factory=SessionLocal,
        executor=QueryExecutor(build_channel(engine)),
        store=ConversationStore(SessionLocal),
    )


async def _run(args: argparse.Namespace) -> int:
    pipeline = build_pipeline()
    response = await pipeline.run(
        AnalyticsRequest(message=args.message, tenant_id=args.user, session_id=args.session)
    )
    print(f"summary: {response.summary}")
    print(f"sql: {response.sql}")
    print(f"chart: {response.chart_type} rows={response.row_count}")
    for row in (response.data or [])[: args.show_rows]:
        print(f"- {json.dumps(jsonable_encoder(row))}")
    return 1 if response.error else 0


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    try:
        return asyncio.run(_run(args))
    except Exception as exc:  # noqa: BLE001 - surface actionable errors
        code, message = _format_error(exc)
        print(message, file=sys.stderr)
        return code


if __name__ == "__main__":
    raise SystemExit(main())
