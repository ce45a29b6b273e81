"""
Async SQLAlchemy engine and session factory.

Production runs on PostgreSQL through ``asyncpg``; SQLite through
``aiosqlite`` is supported for local runs and the test-suite.  Every
lifecycle transition is one short transaction, so the pool stays small.
"""

from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from src.config import settings


def build_engine(url: str) -> AsyncEngine:
    options: dict[str, Any] = {"echo": settings.db_echo}
    if url.startswith("sqlite"):
        # Concurrent writers queue on SQLite's file lock instead of failing fast
        options["connect_args"] = {"timeout": 30}
    else:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
        )
    return create_async_engine(url, **options)


engine = build_engine(settings.database_url)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""
