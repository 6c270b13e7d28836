from __future__ import annotations

import json
import logging
import re
from typing import Any

from seolens.core.errors import PlanParseError
from seolens.domain.query import ChartConfig, ChartType, QueryPlan
from seolens.providers.llm.base import ModelClient


logger = logging.getLogger(__name__)


PARSE_FALLBACK_EXPLANATION = (
    "I had trouble understanding that request. Please try rephrasing your question."
)
_CODE_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def build_system_prompt(tenant_id: str, schema_context: str, *, max_rows: int = 50) -> str:
    return f"""You are a SQL expert for an SEO analytics platform. Convert natural language questions to PostgreSQL queries.

Available tables:
{schema_context}

Rules:
1. ALWAYS include WHERE user_id = '{tenant_id}' for security
2. Only generate SELECT queries, never INSERT/UPDATE/DELETE
3. Use proper PostgreSQL syntax
4. For date ranges use: date >= 'YYYY-MM-DD' AND date <= 'YYYY-MM-DD'
5. Default to last 7 days if no date specified: date >= CURRENT_DATE - INTERVAL '7 days'
6. Use aggregate functions (SUM, AVG, COUNT) with GROUP BY when appropriate
7. Limit results to {max_rows} rows max unless specifically asked for more
8. Order results meaningfully (by date, by value DESC, etc.)

Respond ONLY with valid JSON in this exact format:
{{
  "sql": "SELECT ...",
  "explanation": "Brief explanation of what the query does",
  "chartType": "bar" | "line" | "pie" | "area" | "table",
  "chartConfig": {{
    "xAxis": "column_name",
    "yAxis": "column_name",
    "title": "Chart title"
  }}
}}

If the question cannot be answered with available data, respond:
{{
  "sql": null,
  "explanation": "Why this cannot be answered",
  "error": true
}}"""


def _strip_code_fence(text: str) -> str:
    match = _CODE_FENCE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def _normalize_chart_type(value: Any) -> ChartType:
    try:
        return ChartType(str(value).lower())
    except ValueError:
        return ChartType.TABLE


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _decode_plan(text: str) -> QueryPlan:
    try:
        body = json.loads(_strip_code_fence(text))
    except (TypeError, ValueError) as exc:
        raise PlanParseError("model response is not valid JSON") from exc
    if not isinstance(body, dict):
        raise PlanParseError("model response is not a JSON object")

    sql = body.get("sql")
    if sql is not None and not isinstance(sql, str):
        raise PlanParseError("sql must be a string or null")
    if sql is not None:
        sql = sql.strip() or None
    config = body.get("chartConfig") if isinstance(body.get("chartConfig"), dict) else {}
    return QueryPlan(
        sql=sql,
        explanation=str(body.get("explanation") or ""),
        chart_type=_normalize_chart_type(body.get("chartType", ChartType.TABLE)),
        chart_config=ChartConfig(
            x_axis=_optional_str(config.get("xAxis")),
            y_axis=_optional_str(config.get("yAxis")),
            title=_optional_str(config.get("title")),
        ),
        error=bool(body.get("error", False)),
    )


def parse_plan_response(text: str) -> QueryPlan:
    """Decode a model response into a plan, recovering from unparsable output."""
    try:
        return _decode_plan(text)
    except PlanParseError as exc:
        logger.info("query_plan_unparsable reason=%s", exc)
        return QueryPlan(sql=None, explanation=PARSE_FALLBACK_EXPLANATION, error=True)


def is_parse_fallback(plan: QueryPlan) -> bool:
    return plan.sql is None and plan.error and plan.explanation == PARSE_FALLBACK_EXPLANATION


class QueryPlanner:
    def __init__(self, client: ModelClient, *, max_rows: int = 50) -> None:
        self._client = client
        self._max_rows = max_rows

    async def plan(self, question: str, tenant_id: str, schema_context: str) -> QueryPlan:
        system_prompt = build_system_prompt(tenant_id, schema_context, max_rows=self._max_rows)
        # Provider failures propagate; only parse failures are recovered here.
        text = await self._client.generate(question, system_prompt)
        return parse_plan_response(text)
