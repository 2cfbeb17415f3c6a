"""
Batch scan orchestrator.

One scan walks every tracked product, platform by platform, in small
concurrent batches. Results are merged back into the store per platform,
notifications are sent as prices cross the target, and in continuous mode
a follow-up scan is scheduled when the pass finishes.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, tzinfo
from typing import Callable

from . import config
from .db import ScanDatabase
from .extractors import BaseExtractor, get_all_extractors
from .models import Platform, ScanLogEntry, ScanStatus, TrackedProduct
from .notifications import NotificationEngine, NotificationKind
from .notifier import Notifier, build_notifier
from .scan_guard import ScanGuard
from .scanner_state import ScannerState, ScannerStateController
from .scheduler import ContinuousScanScheduler
from .storage import ProductStore, StoreBusyError
from .utils import generate_scan_id, utcnow

logger = logging.getLogger(__name__)


@dataclass
class ScanReport:
    """Outcome of one scan pass, returned to whoever triggered it."""

    started: bool
    scan_id: str | None = None
    status: ScanStatus | None = None
    products_scanned: int = 0
    success_count: int = 0
    failure_count: int = 0
    notification_count: int = 0
    cleanup_count: int = 0
    duration_seconds: float = 0.0
    is_continuous: bool = False
    stopped_manually: bool = False
    failed_partitions: list[str] = field(default_factory=list)
    message: str | None = None
    error: str | None = None

    def to_log_entry(self) -> ScanLogEntry:
        return ScanLogEntry(
            timestamp=utcnow(),
            status=self.status or ScanStatus.ERROR,
            scan_id=self.scan_id or "",
            kind="price",
            products_scanned=self.products_scanned,
            success_count=self.success_count,
            failure_count=self.failure_count,
            notification_count=self.notification_count,
            cleanup_count=self.cleanup_count,
            duration_seconds=self.duration_seconds,
            is_continuous=self.is_continuous,
            stopped_manually=self.stopped_manually,
            message=self.message,
            error=self.error,
        )

    def to_dict(self) -> dict:
        return {
            "started": self.started,
            "scan_id": self.scan_id,
            "status": self.status.value if self.status else None,
            "products_scanned": self.products_scanned,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "notification_count": self.notification_count,
            "cleanup_count": self.cleanup_count,
            "duration_seconds": round(self.duration_seconds, 3),
            "is_continuous": self.is_continuous,
            "stopped_manually": self.stopped_manually,
            "failed_partitions": list(self.failed_partitions),
            "message": self.message,
            "error": self.error,
        }


@dataclass
class ProductOutcome:
    product: TrackedProduct
    success: bool
    notification: NotificationKind | None = None
    error: str | None = None


def group_by_platform(products: list[TrackedProduct]) -> dict[Platform, list[TrackedProduct]]:
    """Group products by platform, keeping first-seen platform order and product order."""
    groups: dict[Platform, list[TrackedProduct]] = {}
    for product in products:
        groups.setdefault(product.platform, []).append(product)
    return groups


def chunked(items: list, size: int) -> list[list]:
    return [items[i : i + size] for i in range(0, len(items), max(1, size))]


class ScanOrchestrator:
    """Runs full price scans and owns the continuous-mode follow-up timer."""

    def __init__(
        self,
        store: ProductStore,
        db: ScanDatabase,
        notifier: Notifier | None = None,
        *,
        extractors: dict[Platform, BaseExtractor] | None = None,
        engine: NotificationEngine | None = None,
        guard: ScanGuard | None = None,
        state: ScannerStateController | None = None,
        batch_size: int = config.BATCH_SIZE,
        throttle_delay: float = config.THROTTLE_DELAY_SECONDS,
        max_retries: int = config.MAX_RETRIES,
        retry_backoff: float = config.RETRY_BACKOFF_SECONDS,
        product_timeout: float = config.PRODUCT_TIMEOUT_SECONDS,
        rescan_delay: float = config.CONTINUOUS_RESCAN_DELAY_SECONDS,
        kickoff_delay: float = config.KICKOFF_DELAY_SECONDS,
        timezone: tzinfo | str = config.NOTIFICATION_TIMEZONE,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.db = db
        self.extractors = extractors if extractors is not None else get_all_extractors()
        self.engine = engine or NotificationEngine(notifier or build_notifier(), timezone=timezone)
        self.guard = guard or ScanGuard()
        self.state = state or ScannerStateController(db)
        self.batch_size = batch_size
        self.throttle_delay = throttle_delay
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.product_timeout = product_timeout
        self.rescan_delay = rescan_delay
        self.kickoff_delay = kickoff_delay
        self.clock = clock
        self.scheduler = ContinuousScanScheduler(self._scheduled_scan, self.state.is_enabled)
        self.last_report: ScanReport | None = None
        self._background: set[asyncio.Task] = set()

    # --- entry points ---

    async def run_scan(self, *, reschedule: bool = True) -> ScanReport:
        """Run one full scan, or report that one is already running."""
        if not self.guard.try_start():
            logger.warning("Scan already in progress, not starting another")
            return ScanReport(started=False, message="Scan already in progress")
        return await self._run_started(generate_scan_id(), reschedule)

    def launch_scan(self) -> str | None:
        """Start a scan in the background. Returns its id, or None if one is running."""
        if not self.guard.try_start():
            return None
        scan_id = generate_scan_id()
        task = asyncio.create_task(self._run_started(scan_id, True))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return scan_id

    async def _scheduled_scan(self) -> ScanReport:
        # Tracked like launched scans so shutdown can wait for it.
        task = asyncio.create_task(self.run_scan())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return await task

    def request_stop(self) -> bool:
        return self.guard.request_stop()

    def set_continuous(self, enabled: bool) -> ScannerState:
        """Persist the continuous flag; enabling it while idle kicks off a scan."""
        state = self.state.set(enabled)
        if enabled:
            if not self.guard.in_progress:
                self.scheduler.schedule(self.kickoff_delay)
        else:
            self.scheduler.cancel()
        return state

    def resume(self) -> bool:
        """Kick off a scan at startup when continuous mode was left on."""
        if self.state.is_enabled() and not self.guard.in_progress:
            logger.info("Continuous scanning was enabled, resuming")
            return self.scheduler.schedule(self.kickoff_delay)
        return False

    @property
    def is_busy(self) -> bool:
        """True while a scan runs or a follow-up is waiting to fire."""
        return self.guard.in_progress or self.scheduler.is_pending or bool(self._background)

    def get_status(self) -> dict:
        return {
            "in_progress": self.guard.in_progress,
            "stop_requested": self.guard.stop_requested,
            "next_scan_pending": self.scheduler.is_pending,
            "scanner_state": self.state.get().to_dict(),
            "last_report": self.last_report.to_dict() if self.last_report else None,
        }

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Cancel the follow-up timer and let a running scan stop at the next batch."""
        self.scheduler.cancel()
        self.guard.request_stop()
        if not self._background:
            return
        done, pending = await asyncio.wait(set(self._background), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # --- scan pass ---

    async def _run_started(self, scan_id: str, reschedule: bool) -> ScanReport:
        started_at = time.monotonic()
        is_continuous = False
        try:
            is_continuous = self.state.is_enabled()
            self.state.record_scan(scan_id)
            report = await self._execute(scan_id, is_continuous, started_at)
        except Exception as e:
            logger.exception(f"Scan {scan_id} failed")
            report = ScanReport(
                started=True,
                scan_id=scan_id,
                status=ScanStatus.ERROR,
                duration_seconds=time.monotonic() - started_at,
                is_continuous=is_continuous,
                error=str(e),
            )
            self._record(report)
        finally:
            self.guard.finish()

        self.last_report = report
        if reschedule and report.status is not ScanStatus.ERROR and not report.stopped_manually:
            self._maybe_reschedule()
        return report

    async def _execute(self, scan_id: str, is_continuous: bool, started_at: float) -> ScanReport:
        report = ScanReport(started=True, scan_id=scan_id, is_continuous=is_continuous)
        products = await asyncio.to_thread(self.store.load_all)

        if not products:
            logger.info("No products to scan")
            report.status = ScanStatus.COMPLETED
            report.message = "No products to scan"
            report.duration_seconds = time.monotonic() - started_at
            self._record(report)
            return report

        logger.info(f"Scan {scan_id} started: {len(products)} products")
        for platform, items in group_by_platform(products).items():
            if self.guard.stop_requested:
                break
            updated = await self._scan_platform(platform, items, report)
            if not updated:
                continue
            saved = await asyncio.to_thread(self.store.save, platform, updated)
            if not saved:
                report.failed_partitions.append(platform.partition)

        report.stopped_manually = self.guard.stop_requested
        report.status = ScanStatus.STOPPED if report.stopped_manually else ScanStatus.COMPLETED
        report.duration_seconds = time.monotonic() - started_at
        if report.failed_partitions:
            report.message = f"Save failed for: {', '.join(report.failed_partitions)}"

        if report.status is ScanStatus.COMPLETED:
            report.cleanup_count = await self._cleanup()

        self._record(report)
        logger.info(
            f"Scan {scan_id} {report.status.value}: {report.products_scanned} scanned, "
            f"{report.success_count} ok, {report.failure_count} failed, "
            f"{report.notification_count} notifications in {report.duration_seconds:.1f}s"
        )

        if report.notification_count > 0:
            await self.engine.send_summary(
                report.notification_count,
                report.products_scanned,
                report.duration_seconds,
                stopped=report.stopped_manually,
            )
        return report

    async def _scan_platform(
        self,
        platform: Platform,
        products: list[TrackedProduct],
        report: ScanReport,
    ) -> list[TrackedProduct]:
        """Scan one platform batch by batch; returns the products processed before any stop."""
        extractor = self.extractors.get(platform)
        if extractor is None:
            logger.warning(f"No extractor for platform {platform.value}, {len(products)} products will not be scanned")

        batches = chunked(products, self.batch_size)
        updated: list[TrackedProduct] = []
        for index, batch in enumerate(batches):
            if self.guard.stop_requested:
                logger.info(f"Scan stopped before batch {index + 1}/{len(batches)} of {platform.value}")
                break

            results = await asyncio.gather(
                *(self._process_product(extractor, product) for product in batch),
                return_exceptions=True,
            )
            for original, result in zip(batch, results):
                report.products_scanned += 1
                if isinstance(result, BaseException):
                    logger.error(f"Unexpected error processing {original.url}: {result!r}")
                    report.failure_count += 1
                    updated.append(original)
                    continue
                updated.append(result.product)
                if result.success:
                    report.success_count += 1
                else:
                    report.failure_count += 1
                if result.notification is not None:
                    report.notification_count += 1

            if index < len(batches) - 1 and not self.guard.stop_requested:
                await asyncio.sleep(self.throttle_delay)

        return updated

    async def _process_product(
        self,
        extractor: BaseExtractor | None,
        product: TrackedProduct,
    ) -> ProductOutcome:
        if extractor is None:
            return ProductOutcome(replace(product, last_checked=self.clock()), False, error="unsupported platform")

        attempts = self.max_retries + 1
        last_error = "unknown error"
        for attempt in range(attempts):
            if attempt:
                await asyncio.sleep(self.retry_backoff * attempt)
            try:
                scraped = await asyncio.wait_for(extractor.scrape(product.url), timeout=self.product_timeout)
            except asyncio.TimeoutError:
                last_error = f"timed out after {self.product_timeout:g}s"
                logger.warning(f"Attempt {attempt + 1}/{attempts} for {product.url} {last_error}")
                continue
            except Exception as e:
                last_error = str(e) or type(e).__name__
                logger.warning(f"Attempt {attempt + 1}/{attempts} for {product.url} failed: {last_error}")
                continue

            if extractor.blocked_on_zero_price and not scraped.price:
                last_error = "no price found, likely blocked"
                logger.warning(f"Attempt {attempt + 1}/{attempts} for {product.url}: {last_error}")
                continue

            now = self.clock()
            refreshed = product.with_scrape(scraped, now)
            refreshed, kind = await self.engine.process(refreshed, product, now)
            return ProductOutcome(refreshed, True, kind)

        logger.error(f"Giving up on {product.url} after {attempts} attempts: {last_error}")
        if extractor.preserve_on_failure:
            return ProductOutcome(product, False, error=last_error)
        return ProductOutcome(replace(product, last_checked=self.clock()), False, error=last_error)

    async def _cleanup(self) -> int:
        try:
            removed = await asyncio.to_thread(self.store.cleanup_stale_products, self.clock())
        except StoreBusyError as e:
            logger.error(f"Cleanup skipped: {e}")
            return 0
        if removed:
            logger.info(f"Cleanup removed {removed} stale products")
        return removed

    def _record(self, report: ScanReport) -> None:
        try:
            self.db.record_scan_run(report.to_log_entry())
        except Exception:
            logger.exception(f"Failed to record scan log for {report.scan_id}")

    def _maybe_reschedule(self) -> None:
        # Read fresh: the flag may have been turned off while the scan ran.
        if self.state.is_enabled():
            self.scheduler.schedule(self.rescan_delay)
