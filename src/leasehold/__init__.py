"""leasehold - expiring leases for long-running database operations."""

from leasehold.db import EngineProvider, default_provider, init_db
from leasehold.engine import (
    LeaseError,
    LeaseExpired,
    LeaseHandle,
    ProviderError,
    QueryError,
    lease,
    perform_cleanup,
)
from leasehold.models import ExpiredRecord, LeaseRecord

__version__ = "0.1.0"

__all__ = [
    "EngineProvider",
    "ExpiredRecord",
    "LeaseError",
    "LeaseExpired",
    "LeaseHandle",
    "LeaseRecord",
    "ProviderError",
    "QueryError",
    "default_provider",
    "init_db",
    "lease",
    "perform_cleanup",
]
