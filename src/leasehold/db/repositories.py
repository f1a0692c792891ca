"""Row-level statements against the lease table."""

from sqlalchemy import Row, delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncConnection

from leasehold.db.tables import LeaseRecordTable
from leasehold.models import ExpiredRecord, LeaseRecord

_COLUMNS = (
    LeaseRecordTable.id,
    LeaseRecordTable.creation,
    LeaseRecordTable.expiry,
    LeaseRecordTable.title,
    LeaseRecordTable.refresh_count,
)


class LeaseRecordRepository:
    """Repository for lease row operations on an open connection.

    None of these methods begin or commit a transaction; that is the caller's job.
    """

    def __init__(self, conn: AsyncConnection):
        self.conn = conn

    async def insert(self, title: str) -> int:
        """Insert a lease row; the store assigns id, creation and expiry."""
        result = await self.conn.execute(
            insert(LeaseRecordTable)
            .values(title=title)
            .returning(LeaseRecordTable.id)
        )
        return result.scalar_one()

    async def touch(self, lease_id: int) -> int:
        """Bump refresh_count (the store advances expiry) and row-lock the lease.

        Returns the number of rows affected: 1 while the lease exists, 0 once it is gone.
        """
        result = await self.conn.execute(
            update(LeaseRecordTable)
            .where(LeaseRecordTable.id == lease_id)
            .values(refresh_count=LeaseRecordTable.refresh_count + 1)
        )
        return result.rowcount

    async def delete(self, lease_id: int) -> ExpiredRecord | None:
        """Delete a lease row regardless of expiry."""
        result = await self.conn.execute(
            delete(LeaseRecordTable)
            .where(LeaseRecordTable.id == lease_id)
            .returning(*_COLUMNS)
        )
        row = result.first()
        return self._row_to_expired(row) if row else None

    async def delete_expired(self) -> list[ExpiredRecord]:
        """Delete every row whose expiry is earlier than the store's current time."""
        result = await self.conn.execute(
            delete(LeaseRecordTable)
            .where(LeaseRecordTable.expiry < func.current_timestamp())
            .returning(*_COLUMNS)
        )
        rows = sorted(result.all(), key=lambda r: r.id)
        return [self._row_to_expired(r) for r in rows]

    async def get(self, lease_id: int) -> LeaseRecord | None:
        result = await self.conn.execute(
            select(*_COLUMNS).where(LeaseRecordTable.id == lease_id)
        )
        row = result.first()
        return LeaseRecord.from_row(row) if row else None

    async def list(self) -> list[LeaseRecord]:
        result = await self.conn.execute(select(*_COLUMNS).order_by(LeaseRecordTable.id))
        return [LeaseRecord.from_row(r) for r in result.all()]

    def _row_to_expired(self, row: Row) -> ExpiredRecord:
        """Convert a deleted row to a snapshot."""
        return ExpiredRecord.from_row(row)
