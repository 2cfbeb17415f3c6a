"""Notification decisions for products below their target price.

``decide_notification`` is a pure function of the product before and after a
scan; ``NotificationEngine`` wraps it with message formatting and dispatch.

Decision order:

1. missing name, price or target: nothing changes
2. no longer below target: notification tracking is reset
3. price unchanged, already notified today: suppressed
4. price unchanged, last notified on an earlier day: daily reminder
5. never notified, or price changed and not notified today: price alert
6. notified today and the price fell at least the threshold below the
   notified price: further drop
7. anything else (small drop, price rose): nothing
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass, replace
from datetime import UTC, datetime, tzinfo
from enum import Enum
from zoneinfo import ZoneInfo

from . import config
from .models import Platform, TrackedProduct
from .notifier import Notifier
from .utils import format_price, utcnow

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    PRICE_ALERT = "price_alert"
    DAILY_REMINDER = "daily_reminder"
    FURTHER_DROP = "further_drop"


@dataclass(frozen=True)
class NotificationDecision:
    kind: NotificationKind | None
    last_notified_price: float | None
    last_notified_date: datetime | None
    reason: str
    drop_percent: float | None = None

    @property
    def should_notify(self) -> bool:
        return self.kind is not None


def is_same_day(a: datetime, b: datetime, tz: tzinfo) -> bool:
    """Calendar-day equality in ``tz``; naive datetimes are read as UTC."""
    if a.tzinfo is None:
        a = a.replace(tzinfo=UTC)
    if b.tzinfo is None:
        b = b.replace(tzinfo=UTC)
    return a.astimezone(tz).date() == b.astimezone(tz).date()


def decide_notification(
    product: TrackedProduct,
    previous: TrackedProduct,
    now: datetime,
    tz: tzinfo,
    further_drop_percent: float = config.FURTHER_DROP_THRESHOLD_PERCENT,
) -> NotificationDecision:
    """Decide whether the freshly scanned ``product`` warrants a notification."""
    notified_price = product.last_notified_price
    notified_date = product.last_notified_date

    if not product.name or not product.current_price or not product.desired_price:
        return NotificationDecision(None, notified_price, notified_date, "missing required fields")

    if not product.is_below:
        return NotificationDecision(None, None, None, "above target")

    price = product.current_price
    notified_today = notified_date is not None and is_same_day(notified_date, now, tz)
    price_unchanged = previous.current_price == price

    if price_unchanged and notified_today:
        return NotificationDecision(
            None,
            previous.last_notified_price,
            previous.last_notified_date,
            "price unchanged, already notified today",
        )

    if price_unchanged:
        return NotificationDecision(NotificationKind.DAILY_REMINDER, price, now, "daily reminder")

    if notified_date is None or not notified_today:
        return NotificationDecision(NotificationKind.PRICE_ALERT, price, now, "price alert")

    if notified_price and price < notified_price:
        drop_percent = (notified_price - price) / notified_price * 100
        if drop_percent >= further_drop_percent:
            return NotificationDecision(
                NotificationKind.FURTHER_DROP,
                price,
                now,
                f"further drop of {drop_percent:.1f}%",
                drop_percent=drop_percent,
            )
        return NotificationDecision(
            None,
            notified_price,
            notified_date,
            f"drop of {drop_percent:.1f}% below threshold",
            drop_percent=drop_percent,
        )

    return NotificationDecision(None, notified_price, notified_date, "price rose since last notification")


def _describe(product: TrackedProduct) -> str:
    name = product.name or product.url
    if product.brand:
        name = f"{product.brand} - {name}"
    return html.escape(name)


def _footer(product: TrackedProduct) -> str:
    platform = ""
    if product.platform is not Platform.UNKNOWN:
        platform = f"<i>Platform: {product.platform.value}</i>\n\n"
    return f'{platform}<a href="{html.escape(product.url, quote=True)}">View Product</a>'


def build_message(kind: NotificationKind, product: TrackedProduct, previous_notified_price: float | None = None) -> str:
    """Format the Telegram (HTML) text for one product notification."""
    price = product.current_price or 0.0
    target = product.desired_price
    discount = (target - price) / target * 100 if target else 0.0
    description = _describe(product)

    if kind is NotificationKind.DAILY_REMINDER:
        return (
            f"🔄 <b>Daily Price Update</b>\n\n<b>{description}</b>\n\n"
            f"The price remains at {format_price(price)}, which is <b>{discount:.1f}%</b> "
            f"below your target of {format_price(target)}!\n\n{_footer(product)}"
        )

    if kind is NotificationKind.FURTHER_DROP:
        before = previous_notified_price or price
        extra = (before - price) / before * 100 if before else 0.0
        return (
            f"📉 <b>Further Price Drop!</b>\n\n<b>{description}</b>\n\n"
            f"Price dropped from {format_price(before)} to {format_price(price)}\n\n"
            f"<b>Additional {extra:.1f}% savings!</b>\n\n"
            f"Your target price: {format_price(target)}\nTotal discount: {discount:.1f}%\n\n"
            f"{_footer(product)}"
        )

    return (
        f"🎉 <b>Price Alert!</b>\n\n<b>{description}</b>\n\n"
        f"The price is now {format_price(price)}, which is <b>{discount:.1f}%</b> "
        f"below your target of {format_price(target)}!\n\n{_footer(product)}"
    )


def build_summary_message(notification_count: int, products_scanned: int, duration_seconds: float, stopped: bool) -> str:
    plural = "s" if notification_count != 1 else ""
    message = (
        f"📊 <b>Scan Summary</b>\n\n{notification_count} price alert{plural} sent.\n\n"
        f"Total products scanned: {products_scanned}\nScan duration: {round(duration_seconds)}s"
    )
    if stopped:
        message += "\n\n⚠️ Scan was stopped manually"
    return message


class NotificationEngine:
    """Applies notification decisions to scanned products and dispatches messages."""

    def __init__(
        self,
        notifier: Notifier,
        timezone: tzinfo | str = config.NOTIFICATION_TIMEZONE,
        further_drop_percent: float = config.FURTHER_DROP_THRESHOLD_PERCENT,
    ):
        self.notifier = notifier
        self.tz = ZoneInfo(timezone) if isinstance(timezone, str) else timezone
        self.further_drop_percent = further_drop_percent

    async def process(
        self,
        product: TrackedProduct,
        previous: TrackedProduct,
        now: datetime | None = None,
    ) -> tuple[TrackedProduct, NotificationKind | None]:
        """Return the product with updated tracking fields and the kind sent, if any.

        When dispatch fails the product keeps its previous tracking fields so
        the same trigger fires again on a later scan.
        """
        now = now or utcnow()
        decision = decide_notification(product, previous, now, self.tz, self.further_drop_percent)

        if not decision.should_notify:
            logger.debug(f"No notification for {product.id}: {decision.reason}")
            return (
                replace(
                    product,
                    last_notified_price=decision.last_notified_price,
                    last_notified_date=decision.last_notified_date,
                ),
                None,
            )

        message = build_message(decision.kind, product, product.last_notified_price)
        if not await self.notifier.send(message):
            logger.error(f"Failed to send {decision.kind.value} notification for {product.id}")
            return product, None

        logger.info(f"Sent {decision.kind.value} notification for {product.name or product.url}")
        return (
            replace(
                product,
                last_notified_price=decision.last_notified_price,
                last_notified_date=decision.last_notified_date,
            ),
            decision.kind,
        )

    async def send_summary(
        self,
        notification_count: int,
        products_scanned: int,
        duration_seconds: float,
        stopped: bool = False,
    ) -> bool:
        message = build_summary_message(notification_count, products_scanned, duration_seconds, stopped)
        return await self.notifier.send(message)
