"""Transaction adapter.

Runs a unit of work inside one store transaction and funnels every failure
through a single exception channel:

* the provider cannot hand out a connection -> ``ProviderError``
* the store fails a statement or the commit  -> ``QueryError``
* lease validation fails                     -> ``LeaseExpired``
* the unit of work raises its own exception  -> propagated unchanged

Any exception leaving the unit of work rolls the transaction back. When an
``error_factory`` is given, lease errors are converted into the caller's own
exception type before they are raised, so one ``except`` clause in the caller
sees both its own failures and lease failures.
"""

import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from leasehold.db.provider import ConnectionProvider
from leasehold.engine.errors import LeaseError, ProviderError, QueryError
from leasehold.observability.metrics import metrics

logger = logging.getLogger(__name__)

R = TypeVar("R")

ErrorFactory = Callable[[LeaseError], BaseException]


def funnel_error(error: LeaseError, error_factory: Optional[ErrorFactory]) -> BaseException:
    if error_factory is None:
        return error
    return error_factory(error)


async def run_transaction(
    provider: ConnectionProvider,
    fn: Callable[[AsyncConnection], Awaitable[R]],
    *,
    error_factory: Optional[ErrorFactory] = None,
) -> R:
    """Run ``fn`` inside a fresh transaction obtained from ``provider``."""
    try:
        conn = await provider.get()
    except Exception as e:
        metrics.inc_counter("lease.provider.failed")
        raise funnel_error(ProviderError(e), error_factory) from e

    try:
        async with conn.begin():
            result = await fn(conn)
    except LeaseError as e:
        metrics.inc_counter("lease.transaction.rollback")
        converted = funnel_error(e, error_factory)
        if converted is e:
            raise
        raise converted from e
    except SQLAlchemyError as e:
        metrics.inc_counter("lease.transaction.rollback")
        logger.debug(f"Lease transaction failed in the store: {e}")
        raise funnel_error(QueryError(e), error_factory) from e
    except Exception:
        metrics.inc_counter("lease.transaction.rollback")
        raise
    finally:
        await conn.close()

    metrics.inc_counter("lease.transaction.commit")
    return result
