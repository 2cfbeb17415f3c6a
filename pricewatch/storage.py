"""Partitioned JSON storage for tracked products.

Each platform owns one partition file ``<data_dir>/<platform>_products.json``
holding the product list plus a map of recently deleted ids. Files are
replaced atomically (temp file + rename), and every write to a partition
happens under that partition's lock.
"""

from __future__ import annotations

import json
import logging
import secrets
import threading
from contextlib import ExitStack, contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Iterable, Iterator

from . import config
from .models import Platform, TrackedProduct, compute_is_below
from .utils import detect_platform, generate_id, parse_timestamp, utcnow

logger = logging.getLogger(__name__)

PARTITIONS: tuple[Platform, ...] = (
    Platform.MYNTRA,
    Platform.AMAZON,
    Platform.FLIPKART,
    Platform.UNKNOWN,
)


class StoreError(Exception):
    """Base class for storage errors."""


class StoreBusyError(StoreError):
    """A partition lock could not be acquired within the allowed wait."""


class DuplicateProductError(StoreError):
    def __init__(self, url: str):
        super().__init__(f"Product already tracked: {url}")
        self.url = url


class ProductNotFoundError(StoreError):
    def __init__(self, product_id: str):
        super().__init__(f"Product not found: {product_id}")
        self.product_id = product_id


def _write_json_atomic(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + f".tmp.{secrets.token_hex(6)}")
    tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    tmp.replace(path)


def merge_products(
    current: list[TrackedProduct],
    incoming: list[TrackedProduct],
    deleted_ids: Iterable[str] = (),
) -> list[TrackedProduct]:
    """Reconcile a scan's result set with what is currently stored.

    Stored products missing from ``incoming`` are kept as they are, products
    present in both take the incoming version, and incoming-only products are
    appended unless their id was deleted while the scan was running.
    """
    incoming_by_id = {p.id: p for p in incoming}
    tombstoned = set(deleted_ids)

    merged: list[TrackedProduct] = []
    for product in current:
        merged.append(incoming_by_id.pop(product.id, product))

    for product_id, product in incoming_by_id.items():
        if product_id in tombstoned:
            logger.info(f"Not re-adding product {product_id}: deleted during scan")
            continue
        merged.append(product)

    return merged


def is_retained(
    product: TrackedProduct,
    now: datetime,
    *,
    retention_days: int = config.RETENTION_DAYS,
    grace_days: int = config.NEVER_CHECKED_GRACE_DAYS,
) -> bool:
    """Retention policy: keep recent checks, price wins, and new products."""
    if product.is_below:
        return True
    if product.last_checked is None:
        if product.added_at is None:
            return True
        return (now - product.added_at).days <= grace_days
    return (now - product.last_checked).days <= retention_days


class ProductStore:
    """Durable, platform-partitioned product storage with merge-on-save."""

    def __init__(
        self,
        data_dir: Path | None = None,
        lock_timeout: float = config.LOCK_TIMEOUT_SECONDS,
        tombstone_ttl: timedelta = timedelta(days=config.TOMBSTONE_TTL_DAYS),
    ):
        self.data_dir = Path(data_dir or config.DATA_DIR)
        self.lock_timeout = lock_timeout
        self.tombstone_ttl = tombstone_ttl
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self.data_dir.mkdir(parents=True, exist_ok=True)

    # --- partition files ---

    def partition_path(self, platform: Platform | str) -> Path:
        return self.data_dir / f"{Platform.from_value(platform).partition}_products.json"

    def _lock_for(self, partition: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(partition, threading.Lock())

    @contextmanager
    def partition_lock(self, platform: Platform | str) -> Iterator[None]:
        """Hold a partition's write lock, failing after ``lock_timeout`` seconds."""
        partition = Platform.from_value(platform).partition
        lock = self._lock_for(partition)
        if not lock.acquire(timeout=self.lock_timeout):
            logger.error(f"Failed to acquire lock for {partition} after {self.lock_timeout}s")
            raise StoreBusyError(f"Partition '{partition}' is busy")
        try:
            yield
        finally:
            lock.release()

    @contextmanager
    def _locked(self, platforms: Iterable[Platform]) -> Iterator[None]:
        # Fixed acquisition order so multi-partition writers cannot deadlock.
        partitions = sorted({p.partition for p in platforms})
        with ExitStack() as stack:
            for partition in partitions:
                stack.enter_context(self.partition_lock(partition))
            yield

    def _read_partition(self, platform: Platform) -> tuple[list[TrackedProduct], dict[str, str]]:
        path = self.partition_path(platform)
        if not path.exists():
            return [], {}

        raw = json.loads(path.read_text(encoding="utf-8") or "[]")
        if isinstance(raw, list):
            records, deleted = raw, {}
        else:
            records = raw.get("products") or []
            deleted = dict(raw.get("deleted") or {})

        products = []
        for record in records:
            product = TrackedProduct.from_dict(record)
            # The partition a record lives in is authoritative for its platform.
            product.platform = platform
            products.append(product)
        return products, deleted

    def _write_partition(
        self,
        platform: Platform,
        products: list[TrackedProduct],
        deleted: dict[str, str],
    ) -> None:
        cutoff = utcnow() - self.tombstone_ttl
        live_ids = {p.id for p in products}
        deleted = {
            pid: stamp
            for pid, stamp in deleted.items()
            if pid not in live_ids and (parse_timestamp(stamp) or cutoff) > cutoff
        }
        _write_json_atomic(
            self.partition_path(platform),
            {
                "products": [p.to_dict() for p in products],
                "deleted": deleted,
            },
        )

    # --- scan-facing API ---

    def load(self, platform: Platform | str) -> list[TrackedProduct]:
        """Load one partition, creating an empty one if it does not exist yet."""
        platform = Platform.from_value(platform)
        path = self.partition_path(platform)
        if not path.exists():
            with self.partition_lock(platform):
                # A writer may have created it while we waited for the lock.
                if not path.exists():
                    _write_json_atomic(path, {"products": [], "deleted": {}})
                    return []
        products, _ = self._read_partition(platform)
        return products

    def load_all(self) -> list[TrackedProduct]:
        products: list[TrackedProduct] = []
        for platform in PARTITIONS:
            products.extend(self.load(platform))
        return products

    def save(self, platform: Platform | str, products: list[TrackedProduct]) -> bool:
        """Merge ``products`` into the stored partition and write it atomically.

        Returns False (after logging) when the partition lock cannot be taken.
        """
        platform = Platform.from_value(platform)
        try:
            with self.partition_lock(platform):
                current, deleted = self._read_partition(platform)
                merged = merge_products(current, products, deleted.keys())
                for product in merged:
                    product.platform = platform
                self._write_partition(platform, merged, deleted)
        except StoreBusyError:
            logger.error(f"Save aborted for {platform.partition}: partition busy")
            return False

        logger.debug(f"Saved {len(merged)} products to {platform.partition}")
        return True

    def set_offers(self, platform: Platform | str, offers_by_id: dict[str, list[str] | None]) -> int:
        """Replace only the offers field of stored products; returns how many were updated.

        Products deleted in the meantime are skipped. Raises StoreBusyError.
        """
        platform = Platform.from_value(platform)
        with self.partition_lock(platform):
            products, deleted = self._read_partition(platform)
            updated = 0
            for product in products:
                if product.id in offers_by_id:
                    offers = offers_by_id[product.id]
                    product.offers = list(offers) if offers else None
                    updated += 1
            if updated:
                self._write_partition(platform, products, deleted)
        return updated

    # --- user-facing API ---

    def get_product(self, product_id: str) -> TrackedProduct | None:
        for product in self.load_all():
            if product.id == product_id:
                return product
        return None

    def list_products(self, platform: Platform | str | None = None) -> list[TrackedProduct]:
        if platform is None:
            return self.load_all()
        return self.load(platform)

    def add_product(self, product: TrackedProduct) -> TrackedProduct:
        """Track a new product; raises DuplicateProductError on a known URL."""
        added, duplicates = self.add_products([product])
        if duplicates:
            raise DuplicateProductError(duplicates[0])
        return added[0]

    def add_products(self, products: list[TrackedProduct]) -> tuple[list[TrackedProduct], list[str]]:
        """Track several products at once.

        Returns the products that were added and the URLs skipped as
        duplicates (case-insensitive, across every partition and within the
        submitted batch).
        """
        now = utcnow()
        prepared: list[TrackedProduct] = []
        for product in products:
            if not product.id:
                product.id = generate_id()
            if product.platform is Platform.UNKNOWN:
                product.platform = detect_platform(product.url)
            if product.added_at is None:
                product.added_at = now
            product.is_below = compute_is_below(product.current_price, product.desired_price)
            prepared.append(product)

        added: list[TrackedProduct] = []
        duplicates: list[str] = []
        with self._locked(PARTITIONS):
            partitions = {p: self._read_partition(p) for p in PARTITIONS}
            known_urls = {
                existing.url.lower()
                for existing_products, _ in partitions.values()
                for existing in existing_products
            }
            touched: set[Platform] = set()
            for product in prepared:
                key = product.url.lower()
                if key in known_urls:
                    duplicates.append(product.url)
                    continue
                known_urls.add(key)
                existing_products, deleted = partitions[product.platform]
                existing_products.append(product)
                deleted.pop(product.id, None)
                touched.add(product.platform)
                added.append(product)

            for platform in touched:
                self._write_partition(platform, *partitions[platform])

        if duplicates:
            logger.info(f"Skipped {len(duplicates)} duplicate products")
        return added, duplicates

    def update_product(self, product_id: str, updates: dict[str, Any]) -> TrackedProduct:
        """Apply user edits to one product.

        A platform change moves the record: it is removed from the old
        partition (leaving a tombstone) and appended to the new one. A URL
        change is rejected with DuplicateProductError when another product
        already tracks that URL.
        """
        current = self.get_product(product_id)
        if current is None:
            raise ProductNotFoundError(product_id)

        target_platform = Platform.from_value(updates.get("platform", current.platform))
        new_url = updates.get("url")
        # Duplicate checks need every partition held, like add_products.
        platforms = PARTITIONS if new_url is not None else {current.platform, target_platform}
        with self._locked(platforms):
            source_products, source_deleted = self._read_partition(current.platform)
            index = next((i for i, p in enumerate(source_products) if p.id == product_id), None)
            if index is None:
                raise ProductNotFoundError(product_id)

            if new_url is not None:
                key = new_url.lower()
                for platform in PARTITIONS:
                    for existing in self._read_partition(platform)[0]:
                        if existing.id != product_id and existing.url.lower() == key:
                            raise DuplicateProductError(new_url)

            data = source_products[index].to_dict()
            data.update({k: v for k, v in updates.items() if k != "id"})
            data["platform"] = target_platform.value
            updated = TrackedProduct.from_dict(data)
            updated.is_below = compute_is_below(updated.current_price, updated.desired_price)

            if target_platform is current.platform:
                source_products[index] = updated
                self._write_partition(current.platform, source_products, source_deleted)
            else:
                del source_products[index]
                source_deleted[product_id] = utcnow().isoformat()
                self._write_partition(current.platform, source_products, source_deleted)

                target_products, target_deleted = self._read_partition(target_platform)
                target_products.append(updated)
                target_deleted.pop(product_id, None)
                self._write_partition(target_platform, target_products, target_deleted)
                logger.info(
                    f"Moved product {product_id} from {current.partition} to {target_platform.partition}"
                )

        return updated

    def delete_products(self, product_ids: Iterable[str]) -> int:
        """Delete products by id from whichever partitions hold them."""
        ids = set(product_ids)
        if not ids:
            return 0

        removed = 0
        stamp = utcnow().isoformat()
        for platform in PARTITIONS:
            with self.partition_lock(platform):
                products, deleted = self._read_partition(platform)
                kept = [p for p in products if p.id not in ids]
                if len(kept) == len(products):
                    continue
                for product in products:
                    if product.id in ids:
                        deleted[product.id] = stamp
                removed += len(products) - len(kept)
                self._write_partition(platform, kept, deleted)
        return removed

    def delete_platform(self, platform: Platform | str) -> int:
        """Delete every product in one partition."""
        platform = Platform.from_value(platform)
        stamp = utcnow().isoformat()
        with self.partition_lock(platform):
            products, deleted = self._read_partition(platform)
            for product in products:
                deleted[product.id] = stamp
            self._write_partition(platform, [], deleted)
        logger.info(f"Deleted {len(products)} products from {platform.partition}")
        return len(products)

    # --- retention ---

    def cleanup_stale_products(
        self,
        now: datetime | None = None,
        *,
        retention_days: int = config.RETENTION_DAYS,
        grace_days: int = config.NEVER_CHECKED_GRACE_DAYS,
    ) -> int:
        """Drop products that are neither recently checked, below target, nor new."""
        now = now or utcnow()
        removed = 0
        for platform in PARTITIONS:
            with self.partition_lock(platform):
                products, deleted = self._read_partition(platform)
                kept = [
                    p
                    for p in products
                    if is_retained(p, now, retention_days=retention_days, grace_days=grace_days)
                ]
                if len(kept) == len(products):
                    continue
                stamp = utcnow().isoformat()
                kept_ids = {p.id for p in kept}
                for product in products:
                    if product.id not in kept_ids:
                        deleted[product.id] = stamp
                removed += len(products) - len(kept)
                self._write_partition(platform, kept, deleted)
        return removed
