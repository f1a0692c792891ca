"""leasehold database layer."""

from leasehold.db.base import Base, close_db, create_engine, drop_db, get_engine, init_db
from leasehold.db.provider import ConnectionProvider, EngineProvider, default_provider
from leasehold.db.tables import LeaseRecordTable

__all__ = [
    "Base",
    "ConnectionProvider",
    "EngineProvider",
    "LeaseRecordTable",
    "close_db",
    "create_engine",
    "default_provider",
    "drop_db",
    "get_engine",
    "init_db",
]
