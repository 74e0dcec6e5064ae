"""
Command line entry point.

    tle-tracker fetch SPACEMOBILE BLUEWALKER --refresh
    tle-tracker track SPACEMOBILE --ticks 5
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from . import program_catalog
from .config import DEFAULT_QUERY_KEYS
from .errors import CelesTrakError
from .logging_config import configure_logging, get_logger
from .models import LoadStatus
from .repository import TLERepository
from .tle_catalog import TLECatalog
from .tracking import TrackingSession

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tle-tracker", description="CelesTrak TLE fetcher and tracker")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    fetch = subparsers.add_parser("fetch", help="Load TLEs and print a summary")
    fetch.add_argument("queries", nargs="*", metavar="QUERY", default=None)
    fetch.add_argument("--refresh", action="store_true", help="Bypass the fresh cache")

    track = subparsers.add_parser("track", help="Propagate satellites once per second")
    track.add_argument("queries", nargs="*", metavar="QUERY", default=None)
    track.add_argument("--ticks", type=int, default=10, help="Snapshots to print before exiting")
    return parser


async def run_fetch(queries: List[str], refresh: bool, repository: TLERepository) -> int:
    catalog = TLECatalog.from_repository(repository)
    if refresh:
        await catalog.refresh_tles(queries)
    else:
        await catalog.fetch_tles(queries)

    if catalog.state == LoadStatus.ERROR:
        print(f"Error: {catalog.error_message}", file=sys.stderr)
        return 1
    if catalog.refresh_notice is not None:
        print(f"{catalog.refresh_notice.title}: {catalog.refresh_notice.message}", file=sys.stderr)

    print(f"{len(catalog.tles)} TLEs, fetched {catalog.last_fetched_at.isoformat()}")
    for tle in catalog.tles:
        descriptor = program_catalog.descriptor_for_tle(tle.name, tle.line1)
        print(f"  {descriptor.display_name:<24} {descriptor.category.label:<14} {tle.line1[2:7]}")
    return 0


async def run_track(queries: List[str], ticks: int, repository: TLERepository) -> int:
    session = TrackingSession(repository)
    updates = session.subscribe()
    task = session.start_tracking(queries)
    if task is None:
        print(f"Error: {session.error_message}", file=sys.stderr)
        return 1

    printed = 0
    try:
        while printed < ticks:
            snapshot = await updates.get()
            if snapshot.state == LoadStatus.ERROR:
                print(f"Error: {snapshot.error_message}", file=sys.stderr)
                return 1
            if snapshot.state != LoadStatus.LOADED:
                continue
            printed += 1
            print(f"[{snapshot.last_updated_at.isoformat()}] {len(snapshot.tracked)} satellites")
            for item in snapshot.tracked:
                position = item.position
                print(f"  {item.satellite.name:<24} lat {position.latitude_degrees:8.3f}"
                      f"  lon {position.longitude_degrees:9.3f}  alt {position.altitude_km:8.1f} km")
    finally:
        session.stop_tracking()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(level=logging.DEBUG if args.verbose else logging.WARNING)

    queries = args.queries or list(DEFAULT_QUERY_KEYS)
    repository = TLERepository()
    try:
        if args.command == "fetch":
            return asyncio.run(run_fetch(queries, args.refresh, repository))
        return asyncio.run(run_track(queries, args.ticks, repository))
    except CelesTrakError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
