"""Lease models - snapshots of rows in the lease table."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


class LeaseRecord(BaseModel):
    """A lease row as last read from the store."""

    model_config = ConfigDict(frozen=True)

    id: int
    creation: datetime
    expiry: datetime
    title: str
    refresh_count: int = 0

    @field_validator("creation", "expiry")
    @classmethod
    def ensure_timezone_aware(cls, v: datetime) -> datetime:
        """Store timestamps are UTC; some backends hand them back naive."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @classmethod
    def from_row(cls, row: Any) -> "LeaseRecord":
        """Build a record from a result row carrying the lease columns."""
        return cls(
            id=row.id,
            creation=row.creation,
            expiry=row.expiry,
            title=row.title,
            refresh_count=row.refresh_count,
        )


class ExpiredRecord(LeaseRecord):
    """Snapshot of a lease at the moment its row was removed.

    Only used for logging and debugging; it is never written back.
    """

    def describe(self) -> str:
        return (
            f"lease {self.id} ({self.title!r}) created {self.creation.isoformat()}, "
            f"expiry {self.expiry.isoformat()}, refreshed {self.refresh_count} times"
        )
