"""Cleanup sweep and diagnostic reads of the lease table."""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncConnection

from leasehold.db.provider import ConnectionProvider
from leasehold.db.repositories import LeaseRecordRepository
from leasehold.engine.transaction import run_transaction
from leasehold.models import ExpiredRecord, LeaseRecord
from leasehold.observability.metrics import metrics

logger = logging.getLogger(__name__)


async def perform_cleanup(provider: ConnectionProvider) -> list[ExpiredRecord]:
    """
    Delete every lease whose expiry has passed, in a single transaction.

    The sweep has no notion of ownership: it removes timed-out leases of any
    process, including earlier runs of the calling one. "Passed" is judged by
    the store's clock when the sweep runs. Leases currently inside a validated
    transaction are row-locked, so the sweep waits for them and then sees
    their refreshed expiry.

    Returns the removed leases so they can be logged or inspected.
    """

    async def sweep(conn: AsyncConnection) -> list[ExpiredRecord]:
        return await LeaseRecordRepository(conn).delete_expired()

    expired = await run_transaction(provider, sweep)

    for record in expired:
        logger.info(f"Swept expired {record.describe()}")
    if expired:
        metrics.inc_counter("lease.swept", len(expired))
    return expired


async def list_leases(provider: ConnectionProvider) -> list[LeaseRecord]:
    """Read every lease row, ordered by id."""

    async def read(conn: AsyncConnection) -> list[LeaseRecord]:
        return await LeaseRecordRepository(conn).list()

    return await run_transaction(provider, read)


async def get_lease(provider: ConnectionProvider, lease_id: int) -> Optional[LeaseRecord]:
    """Read one lease row, or None if it is gone."""

    async def read(conn: AsyncConnection) -> Optional[LeaseRecord]:
        return await LeaseRecordRepository(conn).get(lease_id)

    return await run_transaction(provider, read)
