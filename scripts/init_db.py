from __future__ import annotations

import argparse
import asyncio
import random
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from seolens.domain.models import Base, GaData, GscData, SchemaDescription, User
from seolens.persistence.db import SessionLocal, engine


SCHEMA_CATALOG: tuple[dict, ...] = (
    {
        "table_name": "ga_data",
        "description": "Daily Google Analytics traffic per page, device, channel and country",
        "columns": [
            {"name": "user_id", "type": "text"},
            {"name": "date", "type": "date"},
            {"name": "page_path", "type": "text"},
            {"name": "device_category", "type": "text"},
            {"name": "channel_group", "type": "text"},
            {"name": "country", "type": "text"},
            {"name": "views", "type": "integer"},
            {"name": "active_users", "type": "integer"},
            {"name": "new_users", "type": "integer"},
            {"name": "sessions", "type": "integer"},
            {"name": "views_per_user", "type": "numeric"},
            {"name": "avg_engagement_time", "type": "numeric"},
            {"name": "bounce_rate", "type": "numeric"},
            {"name": "engagement_rate", "type": "numeric"},
        ],
        "keywords": [
            "traffic", "visitors", "users", "sessions", "views", "pageviews", "pages", "page",
            "country", "countries", "device", "devices", "channel", "channels", "bounce", "engagement",
        ],
    },
    {
        "table_name": "gsc_data",
        "description": "Daily Google Search Console performance per query, page, country and device",
        "columns": [
            {"name": "user_id", "type": "text"},
            {"name": "date", "type": "date"},
            {"name": "query", "type": "text"},
            {"name": "page", "type": "text"},
            {"name": "country", "type": "text"},
            {"name": "device", "type": "text"},
            {"name": "clicks", "type": "integer"},
            {"name": "impressions", "type": "integer"},
            {"name": "ctr", "type": "numeric"},
            {"name": "position", "type": "numeric"},
        ],
        "keywords": [
            "search", "queries", "query", "keywords", "keyword", "clicks", "impressions",
            "ctr", "position", "ranking", "rankings", "google", "seo",
        ],
    },
)

_DEMO_COUNTRIES = ("United States", "Germany", "India", "Brazil", "United Kingdom")
_DEMO_PAGES = ("/", "/pricing", "/blog/seo-basics", "/blog/core-web-vitals", "/contact")
_DEMO_QUERIES = ("seo tools", "keyword research", "rank tracker", "site audit", "backlink checker")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create tables and seed the schema catalog.")
    parser.add_argument("--demo-user", default=None, help="Also seed a demo user with 30 days of data")
    return parser


async def seed_schema_catalog(session: AsyncSession) -> int:
    existing = set((await session.execute(select(SchemaDescription.table_name))).scalars().all())
    added = 0
    for entry in SCHEMA_CATALOG:
        if entry["table_name"] in existing:
            continue
        session.add(SchemaDescription(**entry))
        added += 1
    return added


async def seed_demo_user(session: AsyncSession, user_id: str, *, days: int = 30) -> None:
    if await session.get(User, user_id) is None:
        session.add(User(id=user_id, email=f"{user_id}@example.com"))
    # Fixed seed so demo dashboards look the same on every machine.
    rng = random.Random(user_id)
    today = date.today()
    for offset in range(days):
        day = today - timedelta(days=offset)
        for country in _DEMO_COUNTRIES:
            sessions = rng.randint(20, 400)
            session.add(
                GaData(
                    user_id=user_id,
                    date=day,
                    page_path=rng.choice(_DEMO_PAGES),
                    device_category=rng.choice(("desktop", "mobile", "tablet")),
                    channel_group=rng.choice(("Organic Search", "Direct", "Referral", "Paid Search")),
                    country=country,
                    views=sessions + rng.randint(0, 300),
                    active_users=int(sessions * 0.8),
                    new_users=int(sessions * 0.4),
                    sessions=sessions,
                    views_per_user=round(rng.uniform(1.0, 3.5), 2),
                    avg_engagement_time=round(rng.uniform(10.0, 180.0), 1),
                    bounce_rate=round(rng.uniform(0.2, 0.7), 3),
                    engagement_rate=round(rng.uniform(0.3, 0.8), 3),
                )
            )
        for query in _DEMO_QUERIES:
            impressions = rng.randint(50, 2000)
            clicks = rng.randint(0, impressions // 5)
            session.add(
                GscData(
                    user_id=user_id,
                    date=day,
                    query=query,
                    page=rng.choice(_DEMO_PAGES),
                    country=rng.choice(_DEMO_COUNTRIES),
                    device=rng.choice(("DESKTOP", "MOBILE")),
                    clicks=clicks,
                    impressions=impressions,
                    ctr=round(clicks / impressions, 4),
                    position=round(rng.uniform(1.0, 40.0), 1),
                )
            )


async def _run(args: argparse.Namespace) -> int:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with SessionLocal() as session:
        added = await seed_schema_catalog(session)
        if args.demo_user:
            await seed_demo_user(session, args.demo_user)
        await session.commit()
    await engine.dispose()
    print(f"tables ready; schema catalog entries added={added}")
    if args.demo_user:
        print(f"demo data seeded for user_id={args.demo_user}")
    return 0


def main() -> int:
    args = _build_parser().parse_args()
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
