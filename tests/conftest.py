"""Shared pytest fixtures for feed aggregator tests.

Fixture summary
---------------
engine           - Async SQLite engine on a per-test database file.
session_factory  - ``async_sessionmaker`` bound to ``engine``.
db_session       - An open session for storage-level tests.
owner_id         - The owner every test channel belongs to.
channel          - A committed channel owned by ``owner_id``.
load_fixture     - Reads a feed document from ``tests/fixtures/feeds``.

Storage and polling tests run against aiosqlite so they need no
infrastructure.  The idempotent inserts use ``INSERT ... ON CONFLICT DO
NOTHING ... RETURNING``, which SQLite supports from 3.35.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

# ---------------------------------------------------------------------------
# Test environment bootstrap
# ---------------------------------------------------------------------------
# Set env vars before any application module reads Settings.

_TEST_ENV_DEFAULTS: dict[str, str] = {
    "DATABASE_URL": "sqlite+aiosqlite:///./test_feed_aggregator.db",
    "CELERY_BROKER_URL": "memory://",
    "CELERY_RESULT_BACKEND": "cache+memory://",
    "LOG_LEVEL": "INFO",
}

for _key, _default in _TEST_ENV_DEFAULTS.items():
    os.environ.setdefault(_key, _default)
os.environ.pop("REDIS_URL", None)

from feed_aggregator.config.settings import get_settings  # noqa: E402
from feed_aggregator.core.database import (  # noqa: E402
    build_engine,
    build_session_factory,
    create_schema,
)
from feed_aggregator.core.models import Channel  # noqa: E402
from feed_aggregator.storage.channels import create_channel  # noqa: E402

get_settings.cache_clear()

OWNER_ID = "https://owner.example"
FIXTURES_DIR = Path(__file__).parent / "fixtures" / "feeds"


@pytest.fixture
def load_fixture() -> Callable[[str], str]:
    """Return a loader for recorded feed documents."""

    def _load(name: str) -> str:
        return (FIXTURES_DIR / name).read_text(encoding="utf-8")

    return _load


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Create an engine and schema on a fresh SQLite file for each test."""
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'feeds.db'}")
    await create_schema(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def owner_id() -> str:
    return OWNER_ID


@pytest_asyncio.fixture
async def channel(session_factory: async_sessionmaker[AsyncSession]) -> Channel:
    """A committed channel named "Tech" owned by ``OWNER_ID``."""
    async with session_factory() as session:
        created = await create_channel(session, OWNER_ID, "Tech")
        await session.commit()
    return created
