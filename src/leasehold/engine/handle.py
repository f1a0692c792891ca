"""Lease handles - the client side of one long-running operation.

A handle is created together with its row in the lease table. Every unit of
work done under the lease goes through ``LeaseHandle.transaction``, which
refreshes and validates the lease with a single conditional update before
running the caller's work in the same store transaction. The update takes a
row lock, so a concurrent cleanup sweep cannot remove the lease while the
work is in progress; by the time the sweep gets the row, its expiry has
already moved forward.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from leasehold.db.provider import ConnectionProvider
from leasehold.db.repositories import LeaseRecordRepository
from leasehold.engine.cleanup import perform_cleanup
from leasehold.engine.errors import LeaseError, LeaseExpired, QueryError
from leasehold.engine.transaction import ErrorFactory, funnel_error, run_transaction
from leasehold.models import ExpiredRecord
from leasehold.observability.metrics import metrics

logger = logging.getLogger(__name__)

R = TypeVar("R")

# Sentinel id of a handle whose row has been released through close()
CLOSED_ID = -1


class LeaseHandle:
    """Represents one long-running operation, identified by a store-assigned id.

    A handle is meant to be driven by a single task at a time. Release it with
    ``close()`` to observe failures, or use it as an async context manager to
    get best-effort release on every exit path.
    """

    def __init__(self, provider: ConnectionProvider, lease_id: int):
        self.provider = provider
        self._id = lease_id

    # =========================================================================
    # Creation
    # =========================================================================

    @classmethod
    async def create(cls, provider: ConnectionProvider, title: str) -> "LeaseHandle":
        """Insert a new lease row in its own transaction and return its handle.

        The title is a human-readable label; it does not need to be unique.
        """

        async def insert(conn: AsyncConnection) -> int:
            return await LeaseRecordRepository(conn).insert(title)

        lease_id = await run_transaction(provider, insert)
        metrics.inc_counter("lease.created")
        logger.info(f"Created lease {lease_id} ({title!r})")
        return cls(provider, lease_id)

    @classmethod
    async def create_with_cleanup(cls, provider: ConnectionProvider, title: str) -> "LeaseHandle":
        """Sweep expired leases, then create a new one.

        Sweep failures are logged and ignored. Call ``perform_cleanup`` yourself
        to act on the swept leases or on a failing sweep.
        """
        try:
            await perform_cleanup(provider)
        except LeaseError as e:
            logger.warning(f"Cleanup before creating lease {title!r} failed: {e}")
        return await cls.create(provider, title)

    @classmethod
    async def create_with_connection(
        cls,
        provider: ConnectionProvider,
        title: str,
        conn: AsyncConnection,
    ) -> "LeaseHandle":
        """Create a lease inside a transaction the caller already has open.

        Lets the creation be conditional on other work in the same transaction:
        if the caller rolls back, the lease row goes with it. ``provider`` is
        what the handle uses for its own later transactions.
        """
        try:
            lease_id = await LeaseRecordRepository(conn).insert(title)
        except SQLAlchemyError as e:
            raise QueryError(e) from e
        metrics.inc_counter("lease.created")
        logger.info(f"Created lease {lease_id} ({title!r}) in caller transaction")
        return cls(provider, lease_id)

    @staticmethod
    async def perform_cleanup(provider: ConnectionProvider) -> list[ExpiredRecord]:
        """Delete every timed-out lease, whoever owns it. See ``leasehold.engine.cleanup``."""
        return await perform_cleanup(provider)

    # =========================================================================
    # State
    # =========================================================================

    @property
    def id(self) -> int:
        """Lease id.

        Only trust it inside ``transaction``; outside one the lease may have
        been swept since it was last validated.
        """
        return self._id

    @property
    def closed(self) -> bool:
        return self._id == CLOSED_ID

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<LeaseHandle id={self._id} {state}>"

    # =========================================================================
    # Validated work
    # =========================================================================

    async def transaction(
        self,
        fn: Callable[[AsyncConnection, int], Awaitable[R]],
        *,
        error_factory: Optional[ErrorFactory] = None,
    ) -> R:
        """Run ``fn(conn, lease_id)`` as part of the operation this handle represents.

        After beginning the transaction the lease is refreshed and validated in
        one statement, which also locks its row until the transaction ends.
        ``fn`` only runs if the lease still exists; otherwise ``LeaseExpired``
        is raised and the caller should abandon the operation rather than
        retry it.

        Anything ``fn`` raises rolls the whole transaction back, refresh
        included. ``error_factory`` converts lease errors into the caller's own
        exception type.
        """
        if self.closed:
            raise funnel_error(LeaseExpired(), error_factory)

        lease_id = self._id

        async def validated(conn: AsyncConnection) -> R:
            touched = await LeaseRecordRepository(conn).touch(lease_id)
            if touched != 1:
                # The row has been closed, expired or swept
                metrics.inc_counter("lease.validation.expired")
                logger.warning(f"Lease {lease_id} has expired; refusing to run work under it")
                raise LeaseExpired(lease_id)
            return await fn(conn, lease_id)

        result = await run_transaction(self.provider, validated, error_factory=error_factory)
        metrics.inc_counter("lease.refreshed")
        return result

    async def refresh(self) -> None:
        """Push back the expiry without doing any work. Same errors as ``transaction``."""

        async def noop(conn: AsyncConnection, lease_id: int) -> None:
            return None

        await self.transaction(noop)

    # =========================================================================
    # Release
    # =========================================================================

    async def expire(self) -> ExpiredRecord:
        """Delete the lease row now, whatever its expiry.

        Later operations on this handle fail with ``LeaseExpired``, and so does
        a second ``expire()``. Use ``close()`` for an idempotent release.
        """
        if self.closed:
            raise LeaseExpired()

        lease_id = self._id

        async def delete(conn: AsyncConnection) -> ExpiredRecord:
            record = await LeaseRecordRepository(conn).delete(lease_id)
            if record is None:
                raise LeaseExpired(lease_id)
            return record

        record = await run_transaction(self.provider, delete)
        metrics.inc_counter("lease.expired")
        logger.debug(f"Expired {record.describe()}")
        return record

    async def close(self) -> None:
        """Release the lease, raising any error. A no-op on a closed handle."""
        if self.closed:
            return
        lease_id = self._id
        await self.expire()
        self._id = CLOSED_ID
        metrics.inc_counter("lease.closed")
        logger.info(f"Closed lease {lease_id}")

    async def release(self) -> None:
        """Best-effort ``close()``: every lease error is discarded."""
        if self.closed:
            return
        try:
            await self.expire()
        except LeaseExpired:
            # Already gone: closed elsewhere or swept
            self._id = CLOSED_ID
            return
        except LeaseError as e:
            logger.debug(f"Ignoring failure releasing lease {self._id}: {e}")
            return
        self._id = CLOSED_ID
        metrics.inc_counter("lease.closed")

    async def __aenter__(self) -> "LeaseHandle":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.release()


@asynccontextmanager
async def lease(
    provider: ConnectionProvider,
    title: str,
    cleanup: bool = True,
) -> AsyncIterator[LeaseHandle]:
    """Hold a lease for the duration of an ``async with`` block.

    The lease is released on every exit path, errors included; release
    failures are discarded. Call ``handle.close()`` inside the block to
    observe them.
    """
    if cleanup:
        handle = await LeaseHandle.create_with_cleanup(provider, title)
    else:
        handle = await LeaseHandle.create(provider, title)
    async with handle:
        yield handle
