"""Shared fixtures."""

import pytest_asyncio

from support_crawler.db import Database


@pytest_asyncio.fixture
async def database():
    """Fresh in-memory database with all tables created."""
    db = Database("sqlite+aiosqlite:///:memory:")
    await db.init_db()
    yield db
    await db.dispose()
