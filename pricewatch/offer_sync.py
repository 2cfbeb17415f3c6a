"""
Offer sync: refresh promotional offer texts for every tracked product.

Runs platform by platform in throttled batches like a price scan, but
products within a batch share a single browser page and are visited one
after another. Each product has a hard timeout, after which the page is
reset so a wedged navigation cannot stall the rest of the pass. A global
watchdog aborts the whole sync past a fixed ceiling.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass

from playwright.async_api import Page

from . import config
from .db import ScanDatabase
from .extractors import BaseExtractor, get_all_extractors
from .extractors.browser_pool import BrowserPool
from .models import Platform, ScanLogEntry, ScanStatus, TrackedProduct
from .orchestrator import chunked, group_by_platform
from .scan_guard import ScanGuard
from .storage import ProductStore, StoreBusyError
from .utils import generate_scan_id, utcnow

logger = logging.getLogger(__name__)


@dataclass
class OfferSyncReport:
    started: bool
    scan_id: str | None = None
    status: ScanStatus | None = None
    products_processed: int = 0
    offers_found: int = 0
    cleared_count: int = 0
    failure_count: int = 0
    duration_seconds: float = 0.0
    timed_out: bool = False
    message: str | None = None
    error: str | None = None

    def to_log_entry(self) -> ScanLogEntry:
        return ScanLogEntry(
            timestamp=utcnow(),
            status=self.status or ScanStatus.ERROR,
            scan_id=self.scan_id or "",
            kind="offers",
            products_scanned=self.products_processed,
            success_count=self.products_processed - self.failure_count,
            failure_count=self.failure_count,
            duration_seconds=self.duration_seconds,
            message=self.message,
            error=self.error,
        )

    def to_dict(self) -> dict:
        return {
            "started": self.started,
            "scan_id": self.scan_id,
            "status": self.status.value if self.status else None,
            "products_processed": self.products_processed,
            "offers_found": self.offers_found,
            "cleared_count": self.cleared_count,
            "failure_count": self.failure_count,
            "duration_seconds": round(self.duration_seconds, 3),
            "timed_out": self.timed_out,
            "message": self.message,
            "error": self.error,
        }


class OfferSyncOrchestrator:
    """Fetches offers for all products; refuses to run alongside a price scan."""

    def __init__(
        self,
        store: ProductStore,
        guard: ScanGuard,
        *,
        db: ScanDatabase | None = None,
        extractors: dict[Platform, BaseExtractor] | None = None,
        pool: BrowserPool | None = None,
        batch_size: int = config.BATCH_SIZE,
        product_timeout: float = config.OFFER_PRODUCT_TIMEOUT_SECONDS,
        batch_delay: float = config.OFFER_BATCH_DELAY_SECONDS,
        product_pause: float = config.OFFER_PRODUCT_PAUSE_SECONDS,
        page_reset_every: int = config.OFFER_PAGE_RESET_EVERY_BATCHES,
        max_duration: float = config.OFFER_SYNC_MAX_SECONDS,
    ):
        self.store = store
        self.guard = guard
        self.db = db
        self.extractors = extractors if extractors is not None else get_all_extractors()
        self._pool = pool
        self.batch_size = batch_size
        self.product_timeout = product_timeout
        self.batch_delay = batch_delay
        self.product_pause = product_pause
        self.page_reset_every = max(1, page_reset_every)
        self.max_duration = max_duration
        self.last_report: OfferSyncReport | None = None
        self._running = False
        self._state_lock = threading.Lock()
        self._background: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        with self._state_lock:
            return self._running

    def _try_start(self) -> str | None:
        """Claim the sync slot. Returns a refusal message, or None when started."""
        with self._state_lock:
            if self.guard.in_progress:
                return "Price scan in progress"
            if self._running:
                return "Offer sync already in progress"
            self._running = True
        return None

    def _finish(self) -> None:
        with self._state_lock:
            self._running = False

    async def run(self) -> OfferSyncReport:
        """Run one offer sync, or report why it could not start."""
        refusal = self._try_start()
        if refusal:
            logger.warning(f"Offer sync not started: {refusal}")
            return OfferSyncReport(started=False, message=refusal)
        return await self._run_started(generate_scan_id())

    def launch(self) -> tuple[str | None, str | None]:
        """Start a sync in the background. Returns (scan_id, refusal message)."""
        refusal = self._try_start()
        if refusal:
            return None, refusal
        scan_id = generate_scan_id()
        task = asyncio.create_task(self._run_started(scan_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return scan_id, None

    async def _run_started(self, scan_id: str) -> OfferSyncReport:
        report = OfferSyncReport(started=True, scan_id=scan_id)
        started_at = time.monotonic()
        try:
            await asyncio.wait_for(self._execute(report), timeout=self.max_duration)
            report.status = ScanStatus.COMPLETED
        except asyncio.TimeoutError:
            logger.error(f"Offer sync {scan_id} exceeded {self.max_duration:g}s, aborted")
            report.status = ScanStatus.ERROR
            report.timed_out = True
            report.error = f"Offer sync exceeded {self.max_duration:g}s"
        except Exception as e:
            logger.exception(f"Offer sync {scan_id} failed")
            report.status = ScanStatus.ERROR
            report.error = str(e)
        finally:
            self._finish()

        report.duration_seconds = time.monotonic() - started_at
        self.last_report = report
        if self.db is not None:
            try:
                self.db.record_scan_run(report.to_log_entry())
            except Exception:
                logger.exception(f"Failed to record offer sync log for {scan_id}")

        logger.info(
            f"Offer sync {scan_id} {report.status.value}: {report.products_processed} products, "
            f"{report.offers_found} with offers, {report.failure_count} failed"
        )
        return report

    async def _get_pool(self) -> BrowserPool:
        if self._pool is None:
            self._pool = await BrowserPool.get_instance()
        return self._pool

    async def _execute(self, report: OfferSyncReport) -> None:
        products = await asyncio.to_thread(self.store.load_all)
        if not products:
            report.message = "No products to sync"
            return

        logger.info(f"Offer sync {report.scan_id} started: {len(products)} products")
        for platform, items in group_by_platform(products).items():
            extractor = self.extractors.get(platform)
            if extractor is None:
                logger.info(f"No offer extractor for {platform.value}, skipping {len(items)} products")
                continue
            await self._sync_platform(platform, extractor, items, report)

    async def _sync_platform(
        self,
        platform: Platform,
        extractor: BaseExtractor,
        products: list[TrackedProduct],
        report: OfferSyncReport,
    ) -> None:
        pool = await self._get_pool()
        options = await extractor.page_options()
        page = await pool.open_page(**options)
        batches = chunked(products, self.batch_size)
        try:
            for index, batch in enumerate(batches):
                if index and index % self.page_reset_every == 0:
                    logger.debug(f"Recycling offer sync page for {platform.value}")
                    await pool.close_page(page)
                    page = await pool.open_page(**options)

                offers_by_id: dict[str, list[str] | None] = {}
                for position, product in enumerate(batch):
                    if position:
                        await asyncio.sleep(self.product_pause)
                    report.products_processed += 1
                    try:
                        offers = await asyncio.wait_for(
                            extractor.scrape_offers(page, product.url),
                            timeout=self.product_timeout,
                        )
                    except asyncio.TimeoutError:
                        logger.warning(f"Offer extraction timed out for {product.url}")
                        report.failure_count += 1
                        page = await self._reset_page(pool, page, options)
                        continue
                    except Exception as e:
                        logger.warning(f"Offer extraction failed for {product.url}: {e}")
                        report.failure_count += 1
                        page = await self._reset_page(pool, page, options)
                        continue

                    offers_by_id[product.id] = offers or None
                    if offers:
                        report.offers_found += 1
                    elif product.offers:
                        report.cleared_count += 1

                if offers_by_id:
                    try:
                        await asyncio.to_thread(self.store.set_offers, platform, offers_by_id)
                    except StoreBusyError as e:
                        logger.error(f"Could not save offers for {platform.value}: {e}")
                        report.failure_count += len(offers_by_id)

                if index < len(batches) - 1:
                    await asyncio.sleep(self.batch_delay)
        finally:
            await pool.close_page(page)

    async def _reset_page(self, pool: BrowserPool, page: Page, options: dict) -> Page:
        """Navigate away from a stuck page, replacing it if that fails too."""
        try:
            await asyncio.wait_for(page.goto("about:blank"), timeout=5)
            return page
        except Exception as e:
            logger.warning(f"Page reset failed ({e}), opening a fresh page")
        await pool.close_page(page)
        return await pool.open_page(**options)
