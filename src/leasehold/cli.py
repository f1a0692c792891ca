"""Command line tools for operating on the lease table."""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from leasehold.config import settings
from leasehold.db.base import create_engine, init_db
from leasehold.db.provider import EngineProvider
from leasehold.engine.cleanup import list_leases, perform_cleanup
from leasehold.engine.errors import LeaseError
from leasehold.tasks.sweep import cleanup_sweep_loop

logger = logging.getLogger("leasehold")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="leasehold",
        description="Inspect and maintain leasehold lease records",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL (default: LEASEHOLD_DATABASE_URL)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create the lease table and its timeout function")

    sweep = subparsers.add_parser("sweep", help="Delete expired leases")
    sweep.add_argument(
        "--watch",
        action="store_true",
        help="Keep sweeping every cleanup interval until interrupted",
    )
    sweep.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between sweeps with --watch (default: LEASEHOLD_CLEANUP_INTERVAL_SECONDS)",
    )

    subparsers.add_parser("list", help="Show current lease records")
    return parser


async def _run(args: argparse.Namespace) -> int:
    engine = create_engine(args.database_url)
    provider = EngineProvider(engine)
    try:
        if args.command == "init-db":
            await init_db(engine)
            print(f"Lease table ready (timeout {settings.lease_timeout_seconds}s)")
        elif args.command == "sweep" and args.watch:
            shutdown = asyncio.Event()
            try:
                await cleanup_sweep_loop(provider, shutdown, args.interval)
            except asyncio.CancelledError:
                shutdown.set()
        elif args.command == "sweep":
            expired = await perform_cleanup(provider)
            for record in expired:
                print(f"expired {record.describe()}")
            print(f"{len(expired)} expired leases removed")
        elif args.command == "list":
            records = await list_leases(provider)
            for record in records:
                print(
                    f"{record.id}\t{record.title}\t{record.expiry.isoformat()}\t"
                    f"refreshed={record.refresh_count}"
                )
            print(f"{len(records)} leases")
    finally:
        await engine.dispose()
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the ``leasehold`` command."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(_run(args))
    except (LeaseError, SQLAlchemyError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
