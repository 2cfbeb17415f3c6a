"""Shared utilities for extractors, storage and notifications."""

from __future__ import annotations

import re
import secrets
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from urllib.parse import urlparse

if TYPE_CHECKING:
    from .models import Platform

CURRENCY_MAP = {
    "₹": "INR",
    "rs.": "INR",
    "inr": "INR",
    "rs": "INR",
    "€": "EUR",
    "eur": "EUR",
    "$": "USD",
    "usd": "USD",
    "£": "GBP",
    "gbp": "GBP",
}


def parse_price(price_text: str | None) -> tuple[float | None, str | None]:
    """Parse price text into (amount, currency).

    Handles formats like:
    - "₹1,299"
    - "Rs. 1,29,999.00"
    - "M.R.P.: ₹1,999.00"
    - "MRP ₹2499"
    """
    if not price_text:
        return None, None

    text = price_text.strip().lower()

    # Remove common prefixes before currency detection so "m.r.p." is not read as "rs."
    text = re.sub(r"^(m\.r\.p\.?:?|mrp:?|list price:?|price:?|from)\s*", "", text.strip())

    currency = None
    for symbol, normalized in CURRENCY_MAP.items():
        if symbol in text:
            currency = normalized
            text = text.replace(symbol, "")
            break

    if not (match := re.search(r"[\d][\d\s.,]*", text)):
        return None, currency

    num = match.group(0).replace(" ", "").replace("\xa0", "").rstrip(".,")

    last_comma = num.rfind(",")
    last_dot = num.rfind(".")

    if last_comma != -1 and last_dot != -1:
        # Assume last separator is decimal; the other is thousands.
        if last_comma > last_dot:
            num = num.replace(".", "").replace(",", ".")
        else:
            num = num.replace(",", "")
    elif last_comma != -1:
        digits_after = len(num) - last_comma - 1
        if 1 <= digits_after <= 2 and num.count(",") == 1:
            num = num.replace(",", ".")
        else:
            # Indian grouping ("1,29,999") and plain thousands separators.
            num = num.replace(",", "")
    elif last_dot != -1:
        digits_after = len(num) - last_dot - 1
        if not (1 <= digits_after <= 2):
            num = num.replace(".", "")

    try:
        return float(num), currency
    except ValueError:
        return None, currency


def extract_domain(url: str) -> str:
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        return ""
    return host.removeprefix("www.")


def detect_platform(url: str) -> Platform:
    """Detect the retail platform from a product URL."""
    from .models import Platform

    domain = extract_domain(url)
    if not domain:
        return Platform.UNKNOWN
    if "myntra.com" in domain:
        return Platform.MYNTRA
    if "amazon." in domain or "amzn." in domain:
        return Platform.AMAZON
    if "flipkart.com" in domain:
        return Platform.FLIPKART
    return Platform.UNKNOWN


def generate_id() -> str:
    """Generate an opaque product id."""
    return secrets.token_hex(8)


def generate_scan_id() -> str:
    return f"{int(time.time())}-{secrets.token_hex(4)}"


def utcnow() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse an ISO timestamp; naive values are taken to be UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def format_price(amount: float | None) -> str:
    """Format an amount as Indian Rupees, e.g. ``₹1,299``."""
    if amount is None:
        return "N/A"
    return f"₹{amount:,.0f}"
