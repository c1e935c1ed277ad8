from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from freight_billing.core.config import Settings

PRIMARY_STORE = "admin"
SECONDARY_STORE = "regular"


def create_engine(url: str) -> AsyncEngine:
    return create_async_engine(url, pool_pre_ping=True)


@dataclass(frozen=True)
class Database:
    """One named backing store: its engine and session factory."""

    name: str
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]


def open_database(name: str, url: str) -> Database:
    engine = create_engine(url)
    return Database(
        name=name,
        engine=engine,
        session_factory=async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession),
    )


def open_databases(settings: Settings) -> list[Database]:
    """Primary first, then the secondary store when one is configured."""
    databases = [open_database(PRIMARY_STORE, settings.database_url)]
    if settings.secondary_database_url:
        databases.append(open_database(SECONDARY_STORE, settings.secondary_database_url))
    return databases


async def dispose_databases(databases: list[Database]) -> None:
    for database in databases:
        await database.engine.dispose()
