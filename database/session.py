"""
Async SQLAlchemy engine and session helpers.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.engine import make_url
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from database.errors import UpstreamFailure

logger = logging.getLogger(__name__)


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Build an engine with pool settings suited to the backend."""
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        options = {"connect_args": {"check_same_thread": False}}
        if not url.database or url.database == ":memory:":
            # one shared connection, otherwise each checkout sees an empty db
            options["poolclass"] = StaticPool
        return create_async_engine(url, echo=echo, **options)

    return create_async_engine(
        url,
        echo=echo,
        pool_size=10,
        max_overflow=20,
        pool_recycle=3600,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """
    One session per unit of work: commit on success, roll back on error.

    Connectivity errors surface as ``UpstreamFailure``.
    """
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except (OperationalError, InterfaceError) as exc:
            logger.error("Database unavailable: %s", exc)
            await session.rollback()
            raise UpstreamFailure() from exc
        except Exception:
            await session.rollback()
            raise
