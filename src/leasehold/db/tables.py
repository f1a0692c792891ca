"""SQLAlchemy table definitions and store-side lease timeout DDL."""

from datetime import datetime

from sqlalchemy import (
    DDL,
    DateTime,
    Index,
    Integer,
    Sequence,
    Text,
    event,
    func,
)
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql.functions import FunctionElement

from leasehold.config import settings
from leasehold.db.base import Base

LEASE_TABLE = "lease_records"
LEASE_ID_SEQUENCE = "lease_records_id_seq"
TIMEOUT_FUNCTION = "lease_timeout"
REFRESH_TRIGGER = "lease_records_refresh_expiry"


class lease_deadline(FunctionElement):
    """Next expiry deadline, evaluated by the store (never the client clock)."""

    type = DateTime(timezone=True)
    name = "lease_deadline"
    inherit_cache = True


@compiles(lease_deadline)
def _compile_lease_deadline(element, compiler, **kw):
    return f"CURRENT_TIMESTAMP + {TIMEOUT_FUNCTION}()"


@compiles(lease_deadline, "sqlite")
def _compile_lease_deadline_sqlite(element, compiler, **kw):
    return f"datetime('now', '+{settings.lease_timeout_seconds} seconds')"


class LeaseRecordTable(Base):
    """Lease records - one row per active long-running operation."""

    __tablename__ = LEASE_TABLE

    id: Mapped[int] = mapped_column(
        Integer, Sequence(LEASE_ID_SEQUENCE), primary_key=True
    )
    creation: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()
    )
    expiry: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=lease_deadline()
    )
    title: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    refresh_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")

    __table_args__ = (
        # Index for expiry sweeps
        Index("idx_lease_records_expiry", "expiry"),
        # Ids are never handed out twice, even after the newest row is deleted
        {"sqlite_autoincrement": True},
    )


# PostgreSQL: the timeout lives in an IMMUTABLE SQL function so that both the
# column default and the refresh trigger read the same value.


def _postgres_timeout_function(timeout_seconds: int) -> str:
    return (
        f"CREATE OR REPLACE FUNCTION {TIMEOUT_FUNCTION}() "
        f"RETURNS interval IMMUTABLE LANGUAGE SQL "
        f"AS $$ SELECT interval '{timeout_seconds} seconds' $$"
    )


_POSTGRES_REFRESH_FUNCTION = f"""
CREATE OR REPLACE FUNCTION {REFRESH_TRIGGER}() RETURNS trigger AS $$
    BEGIN
        NEW.expiry := GREATEST(OLD.expiry, CURRENT_TIMESTAMP + {TIMEOUT_FUNCTION}());
        RETURN NEW;
    END;
$$ LANGUAGE plpgsql
"""

_POSTGRES_REFRESH_TRIGGER = (
    f"CREATE TRIGGER {REFRESH_TRIGGER} BEFORE UPDATE OF refresh_count ON {LEASE_TABLE} "
    f"FOR EACH ROW EXECUTE FUNCTION {REFRESH_TRIGGER}()"
)


def _sqlite_refresh_trigger(timeout_seconds: int) -> str:
    return (
        f"CREATE TRIGGER IF NOT EXISTS {REFRESH_TRIGGER} "
        f"AFTER UPDATE OF refresh_count ON {LEASE_TABLE} FOR EACH ROW "
        f"BEGIN "
        f"UPDATE {LEASE_TABLE} "
        f"SET expiry = max(expiry, datetime('now', '+{timeout_seconds} seconds')) "
        f"WHERE id = NEW.id; "
        f"END"
    )


@event.listens_for(LeaseRecordTable.__table__, "before_create")
def _create_timeout_function(target, connection, **kw):
    if connection.dialect.name == "postgresql":
        connection.execute(DDL(_postgres_timeout_function(settings.lease_timeout_seconds)))


@event.listens_for(LeaseRecordTable.__table__, "after_create")
def _create_refresh_trigger(target, connection, **kw):
    if connection.dialect.name == "postgresql":
        connection.execute(DDL(_POSTGRES_REFRESH_FUNCTION))
        connection.execute(DDL(_POSTGRES_REFRESH_TRIGGER))
    elif connection.dialect.name == "sqlite":
        connection.execute(DDL(_sqlite_refresh_trigger(settings.lease_timeout_seconds)))


@event.listens_for(LeaseRecordTable.__table__, "after_drop")
def _drop_store_functions(target, connection, **kw):
    # SQLite drops the trigger together with the table
    if connection.dialect.name == "postgresql":
        connection.execute(DDL(f"DROP FUNCTION IF EXISTS {REFRESH_TRIGGER}()"))
        connection.execute(DDL(f"DROP FUNCTION IF EXISTS {TIMEOUT_FUNCTION}()"))
