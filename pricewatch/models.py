"""Data models for tracked products and scan runs."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from .utils import parse_timestamp


class Platform(str, Enum):
    """Supported retail sites. The lowercase value names the storage partition."""

    MYNTRA = "Myntra"
    AMAZON = "Amazon"
    FLIPKART = "Flipkart"
    UNKNOWN = "Unknown"

    @property
    def partition(self) -> str:
        return self.value.lower()

    @classmethod
    def from_value(cls, value: str | Platform | None) -> Platform:
        """Case-insensitive lookup; anything unrecognised maps to UNKNOWN."""
        if isinstance(value, Platform):
            return value
        if not value:
            return cls.UNKNOWN
        normalized = str(value).strip().lower()
        for platform in cls:
            if platform.partition == normalized:
                return platform
        return cls.UNKNOWN


class ScanStatus(str, Enum):
    COMPLETED = "completed"
    STOPPED = "stopped"
    ERROR = "error"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _float_or_none(value) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def compute_is_below(current_price: float | None, desired_price: float | None) -> bool:
    """A product is below target only with a positive price at or under the target."""
    if not current_price or desired_price is None:
        return False
    return 0 < current_price <= desired_price


@dataclass
class ScrapedProduct:
    """Normalized fields returned by an extractor."""

    name: str
    brand: str | None
    price: float | None
    mrp: float | None
    platform: Platform
    url: str


@dataclass
class TrackedProduct:
    """A product whose price is being watched."""

    id: str
    url: str
    desired_price: float
    platform: Platform = Platform.UNKNOWN
    name: str | None = None
    brand: str | None = None
    image_url: str | None = None
    current_price: float | None = None
    mrp: float | None = None
    is_below: bool = False
    last_checked: datetime | None = None
    last_notified_price: float | None = None
    last_notified_date: datetime | None = None
    added_at: datetime | None = None
    offers: list[str] | None = field(default=None)

    @property
    def partition(self) -> str:
        return self.platform.partition

    def with_scrape(self, scraped: ScrapedProduct, checked_at: datetime) -> TrackedProduct:
        """Return a copy carrying freshly scraped price data.

        Offers, image and notification tracking are left as they were; the
        notification engine decides what happens to the latter.
        """
        return replace(
            self,
            name=scraped.name or self.name,
            brand=scraped.brand or self.brand,
            current_price=scraped.price,
            mrp=scraped.mrp or self.mrp,
            is_below=compute_is_below(scraped.price, self.desired_price),
            last_checked=checked_at,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "url": self.url,
            "desired_price": self.desired_price,
            "platform": self.platform.value,
            "name": self.name,
            "brand": self.brand,
            "image_url": self.image_url,
            "current_price": self.current_price,
            "mrp": self.mrp,
            "is_below": self.is_below,
            "last_checked": _iso(self.last_checked),
            "last_notified_price": self.last_notified_price,
            "last_notified_date": _iso(self.last_notified_date),
            "added_at": _iso(self.added_at),
            "offers": list(self.offers) if self.offers is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> TrackedProduct:
        offers = data.get("offers")
        return cls(
            id=str(data["id"]),
            url=str(data["url"]),
            desired_price=float(data["desired_price"]),
            platform=Platform.from_value(data.get("platform")),
            name=data.get("name"),
            brand=data.get("brand"),
            image_url=data.get("image_url"),
            current_price=_float_or_none(data.get("current_price")),
            mrp=_float_or_none(data.get("mrp")),
            is_below=bool(data.get("is_below", False)),
            last_checked=parse_timestamp(data.get("last_checked")),
            last_notified_price=_float_or_none(data.get("last_notified_price")),
            last_notified_date=parse_timestamp(data.get("last_notified_date")),
            added_at=parse_timestamp(data.get("added_at")),
            offers=[str(o) for o in offers] if isinstance(offers, list) else None,
        )


@dataclass
class ScanLogEntry:
    """One record in the bounded scan history."""

    timestamp: datetime
    status: ScanStatus
    scan_id: str
    kind: str = "price"
    products_scanned: int = 0
    success_count: int = 0
    failure_count: int = 0
    notification_count: int = 0
    cleanup_count: int = 0
    duration_seconds: float = 0.0
    is_continuous: bool = False
    stopped_manually: bool = False
    message: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value,
            "scan_id": self.scan_id,
            "kind": self.kind,
            "products_scanned": self.products_scanned,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "notification_count": self.notification_count,
            "cleanup_count": self.cleanup_count,
            "duration_seconds": round(self.duration_seconds, 3),
            "is_continuous": self.is_continuous,
            "stopped_manually": self.stopped_manually,
            "message": self.message,
            "error": self.error,
        }
