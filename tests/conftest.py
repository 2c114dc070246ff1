"""Shared fixtures for permission tests."""

import pytest
import pytest_asyncio

from helpers import TEST_SECRET, FakeClock, FlakySource
from rolegate.core import config
from rolegate.core.database.engine import build_engine, build_session_factory, init_db
from rolegate.features.permissions.repository import DatabasePermissionSource
from rolegate.features.permissions.store import PermissionStore


@pytest.fixture(autouse=True)
def jwt_settings(monkeypatch):
    monkeypatch.setattr(config, "JWT_SECRET", TEST_SECRET)
    monkeypatch.setattr(config, "JWT_ALGORITHMS", ["HS256"])


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def source() -> FlakySource:
    return FlakySource()


@pytest.fixture
def store(source, clock) -> PermissionStore:
    return PermissionStore(source, ttl_seconds=300, clock=clock)


@pytest_asyncio.fixture
async def db_source(tmp_path):
    """Database-backed source on a throwaway SQLite file."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'permissions.db'}")
    await init_db(engine)
    yield DatabasePermissionSource(build_session_factory(engine))
    await engine.dispose()
