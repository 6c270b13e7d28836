from __future__ import annotations

import logging
from typing import Any, Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from seolens.domain.models import SchemaDescription
from seolens.persistence.repos.schemas import find_by_keywords


logger = logging.getLogger(__name__)


FALLBACK_SCHEMA = """Table: ga_data (Google Analytics data)
Columns: user_id, date, page_path, device_category, channel_group, country, views, active_users, new_users, sessions, views_per_user, avg_engagement_time, bounce_rate, engagement_rate

Table: gsc_data (Google Search Console data)
Columns: user_id, date, query, page, country, device, clicks, impressions, ctr, position"""


def extract_keywords(question: str) -> list[str]:
    # Short tokens ("by", "me") match too many catalog keywords to be useful.
    return [word for word in question.lower().split() if len(word) > 2]


def _format_column(column: Any) -> str:
    if isinstance(column, dict):
        name = column.get("name", "")
        kind = column.get("type")
        return f"{name} ({kind})" if kind else str(name)
    return str(column)


def render_schema(rows: Iterable[SchemaDescription]) -> str:
    blocks = []
    for row in rows:
        columns = ", ".join(_format_column(column) for column in row.columns or [])
        blocks.append(f"Table: {row.table_name}\nDescription: {row.description}\nColumns: {columns}")
    return "\n\n".join(blocks)


async def build_schema_context(session: AsyncSession, question: str) -> str:
    keywords = extract_keywords(question)
    rows = await find_by_keywords(session, keywords)
    if not rows:
        logger.debug("schema_context_fallback keywords=%s", len(keywords))
        return FALLBACK_SCHEMA
    return render_schema(rows)
