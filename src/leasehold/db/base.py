"""Database engine and schema management."""

import time
from typing import Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from leasehold.config import settings
from leasehold.observability.metrics import metrics


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


_engine: Optional[AsyncEngine] = None


def _attach_query_metrics(target_engine: AsyncEngine) -> None:
    """Attach SQLAlchemy event listeners for query metrics."""
    sync_engine = target_engine.sync_engine
    if getattr(sync_engine, "_leasehold_metrics_attached", False):
        return

    @event.listens_for(sync_engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info["query_start_time"] = time.perf_counter()

    @event.listens_for(sync_engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        start_time = conn.info.pop("query_start_time", None)
        if start_time is None:
            return
        duration_ms = (time.perf_counter() - start_time) * 1000.0
        metrics.inc_counter("db.query.count")
        metrics.observe("db.query.duration_ms", duration_ms)

    sync_engine._leasehold_metrics_attached = True


def create_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """Create an async engine for the given URL (defaults to settings)."""
    url = database_url or settings.async_database_url
    if url.startswith("sqlite"):
        # SQLite pools are not sized
        engine = create_async_engine(url, echo=settings.debug)
    else:
        engine = create_async_engine(
            url,
            echo=settings.debug,
            pool_pre_ping=settings.pool_pre_ping,
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
        )
    _attach_query_metrics(engine)
    return engine


def get_engine() -> AsyncEngine:
    """Return the process-wide default engine, creating it on first use."""
    global _engine

    if _engine is None:
        _engine = create_engine()
    return _engine


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """Create the lease table together with its store-side timeout machinery."""
    # Registers the table and its DDL listeners with the metadata
    import leasehold.db.tables  # noqa: F401

    target = engine or get_engine()
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db(engine: Optional[AsyncEngine] = None) -> None:
    """Drop the lease table and its store-side functions."""
    import leasehold.db.tables  # noqa: F401

    target = engine or get_engine()
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def close_db() -> None:
    """Close database connections."""
    global _engine

    if _engine is not None:
        await _engine.dispose()
        _engine = None
