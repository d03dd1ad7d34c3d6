"""Async SQLAlchemy engine and session factory.

Learn: SQLAlchemy 2.0 async mode: create_async_engine for connection pooling,
async_sessionmaker for short-lived sessions. The engine is built by the app
factory (not at import time) so tests and the CLI can point it anywhere.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from authgate.db.models import Base


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the engine. Postgres gets a real pool: min 5, max 20 connections."""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo)
    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=5,
        max_overflow=15,
        pool_pre_ping=True,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory; the credential store opens one session per operation."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables from the ORM metadata (no migrations, idempotent)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
