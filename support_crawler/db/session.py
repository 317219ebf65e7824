"""
Async SQLAlchemy engine and session management.

Supports SQLite through aiosqlite (default, development and tests) and
PostgreSQL.

Usage:
    db = Database("sqlite+aiosqlite:///./data/crawler.db")
    await db.init_db()

    async with db.session() as session:
        result = await session.execute(select(CrawlSource))
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from .models import Base

logger = structlog.get_logger(__name__)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./data/crawler.db"


def _is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (":memory:" in url or url.split("://", 1)[-1] in ("", "/"))


class Database:
    """
    Owns the async engine and session factory.

    In-memory SQLite shares one connection (StaticPool) so every session
    sees the same database.
    """

    def __init__(self, url: str = DEFAULT_DATABASE_URL, echo: bool = False):
        self.url = url
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None
        self._initialize_engine(echo)

    def _initialize_engine(self, echo: bool) -> None:
        if self.url.startswith("sqlite"):
            kwargs = {"connect_args": {"check_same_thread": False}, "echo": echo}

            if _is_memory_sqlite(self.url):
                kwargs["poolclass"] = StaticPool
            elif ":///" in self.url:
                db_path = self.url.split("///", 1)[1].split("?")[0]
                db_dir = os.path.dirname(db_path)
                if db_dir and not os.path.exists(db_dir):
                    os.makedirs(db_dir, exist_ok=True)
                    logger.info("database_directory_created", path=db_dir)

            self._engine = create_async_engine(self.url, **kwargs)
        else:
            self._engine = create_async_engine(
                self.url,
                pool_pre_ping=True,
                pool_recycle=3600,
                echo=echo,
            )

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.debug("database_initialized", url=self.url.split("@")[-1].split("?")[0])

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database engine not initialized")
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Session scope: commits on success, rolls back on error.
        """
        if self._session_factory is None:
            raise RuntimeError("Database not initialized")

        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def init_db(self) -> None:
        """Create all tables. Safe to call repeatedly."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database_tables_created")

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
