#!/usr/bin/env python3
"""CLI entry point for the price tracker."""

import argparse
import asyncio
import logging
import sys

from . import config
from .db import ScanDatabase
from .extractors import list_platforms
from .extractors.browser_pool import BrowserPool
from .offer_sync import OfferSyncOrchestrator
from .orchestrator import ScanOrchestrator
from .storage import ProductStore


def configure_logging(level: str = config.LOG_LEVEL) -> None:
    logging.basicConfig(level=level, format=config.LOG_FORMAT)


def print_report(report: dict) -> None:
    """Print a scan or offer sync report."""
    print(f"\n{'=' * 60}")
    for key, value in report.items():
        if value is None or value == []:
            continue
        print(f"  {key}: {value}")
    print(f"{'=' * 60}")


async def run_scan(follow: bool) -> int:
    """Run one price scan; with ``follow``, keep going while continuous mode stays on."""
    orchestrator = ScanOrchestrator(ProductStore(), ScanDatabase())
    try:
        report = await orchestrator.run_scan(reschedule=follow)
        print_report(report.to_dict())
        while follow and orchestrator.is_busy:
            await asyncio.sleep(1)
        if follow and orchestrator.last_report is not report:
            print_report(orchestrator.last_report.to_dict())
    finally:
        await orchestrator.shutdown()
        await BrowserPool.shutdown()
    return 0 if report.started else 1


async def run_offer_sync() -> int:
    store = ProductStore()
    db = ScanDatabase()
    orchestrator = ScanOrchestrator(store, db)
    offer_sync = OfferSyncOrchestrator(store, orchestrator.guard, db=db, extractors=orchestrator.extractors)
    try:
        report = await offer_sync.run()
        print_report(report.to_dict())
    finally:
        await BrowserPool.shutdown()
    return 0 if report.started else 1


def show_logs(limit: int) -> int:
    entries = ScanDatabase().get_scan_runs(limit=limit)
    if not entries:
        print("No scans recorded yet")
        return 0
    for entry in entries:
        line = (
            f"{entry.timestamp:%Y-%m-%d %H:%M:%S} [{entry.kind}] {entry.status.value:<9} "
            f"scanned={entry.products_scanned} ok={entry.success_count} "
            f"failed={entry.failure_count} alerts={entry.notification_count} "
            f"{entry.duration_seconds:.1f}s"
        )
        if entry.error:
            line += f" error={entry.error}"
        print(line)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Track product prices and alert when they drop below target",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m pricewatch.cli --scan               # Run one price scan
  python -m pricewatch.cli --scan --follow      # Keep scanning while continuous mode is on
  python -m pricewatch.cli --sync-offers        # Refresh offer texts
  python -m pricewatch.cli --continuous on      # Enable continuous scanning
  python -m pricewatch.cli --logs               # Show recent scan history
  python -m pricewatch.cli --serve              # Run the API server
        """,
    )

    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--scan", action="store_true", help="Run a full price scan")
    group.add_argument("--sync-offers", action="store_true", help="Refresh promotional offers for all products")
    group.add_argument("--continuous", choices=["on", "off"], help="Turn continuous scanning on or off")
    group.add_argument("--logs", action="store_true", help="Show recent scan history")
    group.add_argument("--list-platforms", action="store_true", help="List supported platforms")
    group.add_argument("--serve", action="store_true", help="Run the API server")

    parser.add_argument("--follow", action="store_true", help="With --scan: keep running follow-up scans")
    parser.add_argument("--limit", type=int, default=20, help="With --logs: number of entries")
    parser.add_argument("--host", default="127.0.0.1", help="With --serve: host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="With --serve: port to bind to")

    args = parser.parse_args()
    configure_logging()

    if args.list_platforms:
        print("Supported platforms:")
        for platform in list_platforms():
            print(f"  - {platform.value}")
        return 0

    if args.logs:
        return show_logs(args.limit)

    if args.continuous:
        enabled = args.continuous == "on"
        ScanDatabase().set_scanner_state(enabled)
        print(f"Continuous scanning {'enabled' if enabled else 'disabled'}")
        if enabled:
            print("A running server picks this up after its next scan; use --scan --follow to scan from here")
        return 0

    if args.serve:
        from .webapp.run import serve

        serve(args.host, args.port)
        return 0

    if args.sync_offers:
        return asyncio.run(run_offer_sync())

    return asyncio.run(run_scan(args.follow))


if __name__ == "__main__":
    sys.exit(main())
