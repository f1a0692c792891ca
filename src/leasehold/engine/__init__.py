"""leasehold engine - lease handles, transactions and cleanup."""

from leasehold.engine.cleanup import get_lease, list_leases, perform_cleanup
from leasehold.engine.errors import (
    LeaseError,
    LeaseExpired,
    ProviderError,
    QueryError,
)
from leasehold.engine.handle import CLOSED_ID, LeaseHandle, lease
from leasehold.engine.transaction import run_transaction

__all__ = [
    "CLOSED_ID",
    "LeaseError",
    "LeaseExpired",
    "LeaseHandle",
    "ProviderError",
    "QueryError",
    "get_lease",
    "lease",
    "list_leases",
    "perform_cleanup",
    "run_transaction",
]
