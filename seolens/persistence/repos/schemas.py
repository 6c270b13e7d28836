from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from seolens.domain.models import SchemaDescription


async def list_schema_descriptions(session: AsyncSession) -> list[SchemaDescription]:
    result = await session.execute(select(SchemaDescription).order_by(SchemaDescription.table_name.asc()))
    return list(result.scalars().all())


async def find_by_keywords(session: AsyncSession, keywords: list[str]) -> list[SchemaDescription]:
    # The catalog is a handful of rows; match in Python so JSON keyword lists work on any backend.
    if not keywords:
        return []
    wanted = {keyword.lower() for keyword in keywords}
    matches = []
    for row in await list_schema_descriptions(session):
        terms = {row.table_name.lower(), *(str(k).lower() for k in (row.keywords or []))}
        if terms & wanted:
            matches.append(row)
    return matches
