"""leasehold engine errors."""

from typing import Optional


class LeaseError(Exception):
    """Base error for lease operations."""

    def __init__(self, message: str, code: str = "LEASE_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ProviderError(LeaseError):
    """The connection provider could not supply a connection."""

    def __init__(self, cause: BaseException):
        super().__init__(f"Connection provider failed: {cause}", "PROVIDER_FAILURE")
        self.cause = cause


class QueryError(LeaseError):
    """The store rejected or failed a query for a reason unrelated to lease validity."""

    def __init__(self, cause: BaseException):
        super().__init__(f"Query failed: {cause}", "QUERY_FAILURE")
        self.cause = cause


class LeaseExpired(LeaseError):
    """The lease no longer has a row: it was closed, expired or swept."""

    def __init__(self, lease_id: Optional[int] = None):
        super().__init__(
            "The lease has expired and can no longer be used",
            "LEASE_EXPIRED",
        )
        self.lease_id = lease_id
