"""Observability helpers for leasehold."""

from leasehold.observability.metrics import metrics

__all__ = ["metrics"]
