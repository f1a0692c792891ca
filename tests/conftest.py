"""
Pytest fixtures for leasehold tests.

Tests run against a throwaway SQLite file by default. Set
LEASEHOLD_TEST_DATABASE_URL to run them against PostgreSQL, which also
enables the tests that depend on row-level locking between connections.
"""

import os
from datetime import datetime, timezone

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncConnection

from leasehold.db.base import create_engine, drop_db, init_db
from leasehold.db.provider import EngineProvider
from leasehold.db.tables import LeaseRecordTable
from leasehold.observability.metrics import metrics

TEST_DATABASE_URL = os.getenv("LEASEHOLD_TEST_DATABASE_URL")

LONG_AGO = datetime(2000, 1, 1, tzinfo=timezone.utc)


def _ensure_test_database_url(database_url: str) -> None:
    if "test" not in database_url:
        raise RuntimeError(
            "Refusing to run leasehold tests against a non-test database. "
            "Set LEASEHOLD_TEST_DATABASE_URL to a dedicated test database."
        )


class CountingProvider:
    """Wraps a provider and counts how many connections were requested."""

    def __init__(self, inner):
        self.inner = inner
        self.calls = 0

    async def get(self) -> AsyncConnection:
        self.calls += 1
        return await self.inner.get()


class FailingProvider:
    """Provider whose store is unreachable for the first ``failures`` requests."""

    def __init__(self, inner=None, failures: int = 10**9):
        self.inner = inner
        self.failures = failures

    async def get(self) -> AsyncConnection:
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionRefusedError("store unreachable")
        return await self.inner.get()


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield


@pytest.fixture
async def engine(tmp_path):
    """Engine on a freshly provisioned lease table."""
    if TEST_DATABASE_URL:
        _ensure_test_database_url(TEST_DATABASE_URL)
        url = TEST_DATABASE_URL
    else:
        url = f"sqlite+aiosqlite:///{tmp_path / 'leases.db'}"

    engine = create_engine(url)
    await drop_db(engine)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def provider(engine):
    return EngineProvider(engine)


@pytest.fixture
def counting_provider(provider):
    return CountingProvider(provider)


@pytest.fixture
def require_row_locking(engine):
    """Skip unless the store locks individual rows for concurrent writers."""
    if engine.dialect.name != "postgresql":
        pytest.skip("needs PostgreSQL row-level locking (set LEASEHOLD_TEST_DATABASE_URL)")


@pytest.fixture
def backdate(engine):
    """Move a lease's expiry into the past, as if the timeout had elapsed.

    Only ``expiry`` is written, so the refresh trigger does not fire.
    """

    async def _backdate(lease_id: int) -> None:
        async with engine.begin() as conn:
            await conn.execute(
                update(LeaseRecordTable)
                .where(LeaseRecordTable.id == lease_id)
                .values(expiry=LONG_AGO)
            )

    return _backdate
