"""Connection providers - the source of store connections for lease handles."""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from leasehold.db.base import get_engine


class ConnectionProvider(Protocol):
    """Anything able to hand out a transactional connection on demand.

    Whatever ``get`` raises is reported to lease callers as a provider failure.
    """

    async def get(self) -> AsyncConnection:
        ...


class EngineProvider:
    """Provider backed by a SQLAlchemy async engine and its connection pool."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def get(self) -> AsyncConnection:
        return await self.engine.connect()

    def __repr__(self) -> str:
        return f"EngineProvider({self.engine.url.render_as_string(hide_password=True)!r})"


def default_provider() -> EngineProvider:
    """Provider for the process-wide engine configured from settings."""
    return EngineProvider(get_engine())
