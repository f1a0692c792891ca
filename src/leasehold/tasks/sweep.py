"""Opt-in periodic cleanup of expired leases.

Nothing in leasehold starts this loop. A host process that wants expired
leases swept on a schedule (rather than only when new leases are created
with cleanup) starts it explicitly and stops it on shutdown.
"""

import asyncio
import logging
import random
from typing import Optional

from leasehold.config import settings
from leasehold.db.provider import ConnectionProvider
from leasehold.engine.cleanup import perform_cleanup
from leasehold.engine.errors import LeaseError

logger = logging.getLogger("leasehold.sweep")

_sweep_task: Optional[asyncio.Task] = None
_shutdown_event: Optional[asyncio.Event] = None


async def cleanup_sweep_loop(
    provider: ConnectionProvider,
    shutdown_event: asyncio.Event,
    interval_seconds: Optional[float] = None,
) -> None:
    """
    Run ``perform_cleanup`` until ``shutdown_event`` is set.

    Failed sweeps are logged and the loop carries on. The interval is
    jittered so several processes sweeping the same table drift apart.
    """
    base_interval = interval_seconds or settings.cleanup_interval_seconds
    jitter = settings.cleanup_jitter
    logger.info(
        f"Cleanup sweep loop started (base interval: {base_interval}s, jitter ±{jitter:.0%})"
    )

    while not shutdown_event.is_set():
        try:
            expired = await perform_cleanup(provider)
            if expired:
                logger.info(f"Swept {len(expired)} expired leases")
        except LeaseError as e:
            logger.error(f"Cleanup sweep error: {e}", exc_info=True)

        jittered_interval = base_interval * random.uniform(1 - jitter, 1 + jitter)

        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=jittered_interval)
        except asyncio.TimeoutError:
            pass

    logger.info("Cleanup sweep loop stopped")


async def start_cleanup_sweep(
    provider: ConnectionProvider,
    interval_seconds: Optional[float] = None,
) -> None:
    """Start the cleanup loop as a background task of the running event loop."""
    global _sweep_task, _shutdown_event

    if _sweep_task is not None and not _sweep_task.done():
        raise RuntimeError("Cleanup sweep is already running")

    _shutdown_event = asyncio.Event()
    _sweep_task = asyncio.create_task(
        cleanup_sweep_loop(provider, _shutdown_event, interval_seconds)
    )


async def stop_cleanup_sweep() -> None:
    """Stop the cleanup loop, cancelling it if it does not finish within 10 seconds."""
    global _sweep_task, _shutdown_event

    if _shutdown_event:
        _shutdown_event.set()

    if _sweep_task:
        try:
            await asyncio.wait_for(_sweep_task, timeout=10.0)
        except asyncio.TimeoutError:
            logger.warning("Cleanup sweep task did not stop gracefully, cancelling")
            _sweep_task.cancel()
            try:
                await _sweep_task
            except asyncio.CancelledError:
                pass

    _sweep_task = None
    _shutdown_event = None


def is_running() -> bool:
    return _sweep_task is not None and not _sweep_task.done()
