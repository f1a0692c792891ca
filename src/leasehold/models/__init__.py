"""leasehold data models."""

from leasehold.models.lease import ExpiredRecord, LeaseRecord

__all__ = [
    "ExpiredRecord",
    "LeaseRecord",
]
