"""
Error funnelling tests: lease errors and caller errors share one rollback channel.
"""

import pytest
from sqlalchemy import text

from leasehold.db.repositories import LeaseRecordRepository
from leasehold.engine import (
    LeaseError,
    LeaseExpired,
    LeaseHandle,
    ProviderError,
    QueryError,
    get_lease,
    list_leases,
    run_transaction,
)
from leasehold.observability.metrics import metrics

from conftest import FailingProvider


async def _noop(conn, lease_id):
    return None


class ReportError(Exception):
    """Caller-side error type that lease failures are folded into."""

    def __init__(self, message: str, lease_error: LeaseError | None = None):
        super().__init__(message)
        self.lease_error = lease_error

    @classmethod
    def from_lease_error(cls, error: LeaseError) -> "ReportError":
        return cls(f"lease problem: {error.code}", lease_error=error)


@pytest.mark.asyncio
async def test_closure_error_rolls_back_work_and_refresh(provider):
    handle = await LeaseHandle.create(provider, "rollback")

    async def work(conn, lease_id):
        # Work that must not survive the failure
        await LeaseRecordRepository(conn).insert("side effect")
        raise ReportError("report generation failed")

    with pytest.raises(ReportError, match="report generation failed"):
        await handle.transaction(work)

    records = await list_leases(provider)
    assert [r.title for r in records] == ["rollback"], "Closure work must be rolled back"
    assert records[0].refresh_count == 0, "The refresh is rolled back too"
    assert metrics.counter("lease.transaction.rollback") == 1

    # The lease itself is still usable
    await handle.refresh()
    await handle.close()


@pytest.mark.asyncio
async def test_caller_error_passes_through_unchanged(provider):
    handle = await LeaseHandle.create(provider, "passthrough")
    original = ReportError("business rule violated")

    async def work(conn, lease_id):
        raise original

    with pytest.raises(ReportError) as exc_info:
        await handle.transaction(work, error_factory=ReportError.from_lease_error)

    assert exc_info.value is original
    assert exc_info.value.lease_error is None
    await handle.close()


@pytest.mark.asyncio
async def test_error_factory_converts_expired(provider):
    handle = await LeaseHandle.create(provider, "converted")
    await handle.expire()

    with pytest.raises(ReportError) as exc_info:
        await handle.transaction(
            _noop,
            error_factory=ReportError.from_lease_error,
        )

    assert isinstance(exc_info.value.lease_error, LeaseExpired)
    assert isinstance(exc_info.value.__cause__, LeaseExpired)
    assert str(exc_info.value) == "lease problem: LEASE_EXPIRED"


@pytest.mark.asyncio
async def test_error_factory_converts_expired_on_closed_handle(provider):
    handle = await LeaseHandle.create(provider, "closed then used")
    await handle.close()

    with pytest.raises(ReportError) as exc_info:
        await handle.transaction(
            _noop,
            error_factory=ReportError.from_lease_error,
        )
    assert isinstance(exc_info.value.lease_error, LeaseExpired)


@pytest.mark.asyncio
async def test_provider_failure_surfaces_as_provider_error():
    with pytest.raises(ProviderError) as exc_info:
        await LeaseHandle.create(FailingProvider(), "no store")

    assert isinstance(exc_info.value.cause, ConnectionRefusedError)
    assert exc_info.value.code == "PROVIDER_FAILURE"
    assert metrics.counter("lease.provider.failed") == 1


@pytest.mark.asyncio
async def test_error_factory_converts_provider_failure(provider):
    handle = await LeaseHandle.create(provider, "provider gone")
    lease_id = handle.id
    handle.provider = FailingProvider()

    with pytest.raises(ReportError) as exc_info:
        await handle.transaction(
            _noop,
            error_factory=ReportError.from_lease_error,
        )
    assert isinstance(exc_info.value.lease_error, ProviderError)

    # Lease row untouched
    assert (await get_lease(provider, lease_id)).refresh_count == 0


@pytest.mark.asyncio
async def test_store_failure_in_closure_surfaces_as_query_error(provider):
    handle = await LeaseHandle.create(provider, "bad query")

    async def work(conn, lease_id):
        await conn.execute(text("SELECT * FROM table_that_does_not_exist"))

    with pytest.raises(QueryError) as exc_info:
        await handle.transaction(work)
    assert exc_info.value.code == "QUERY_FAILURE"
    assert exc_info.value.cause is not None

    with pytest.raises(ReportError) as exc_info:
        await handle.transaction(work, error_factory=ReportError.from_lease_error)
    assert isinstance(exc_info.value.lease_error, QueryError)

    await handle.close()


@pytest.mark.asyncio
async def test_create_with_connection_reports_query_error(engine, provider):
    async with engine.connect() as conn:
        await conn.begin()
        # NOT NULL violation on title
        with pytest.raises(QueryError):
            await LeaseHandle.create_with_connection(provider, None, conn)
        await conn.rollback()


@pytest.mark.asyncio
async def test_run_transaction_commits_and_returns_result(provider):
    async def insert(conn):
        return await LeaseRecordRepository(conn).insert("via adapter")

    lease_id = await run_transaction(provider, insert)

    assert (await get_lease(provider, lease_id)).title == "via adapter"
    assert metrics.counter("lease.transaction.commit") >= 2
