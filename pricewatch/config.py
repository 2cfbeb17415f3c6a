"""Runtime configuration.

Every value has a sensible default and can be overridden through an
environment variable of the same name prefixed with ``PRICEWATCH_``
(Telegram credentials use their conventional names).
"""

from __future__ import annotations

import os
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent.parent


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


DATA_DIR = Path(os.environ.get("PRICEWATCH_DATA_DIR") or (REPO_ROOT / "data"))
DB_FILENAME = "pricewatch.db"

LOG_LEVEL = os.environ.get("PRICEWATCH_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Batch scan
BATCH_SIZE = _env_int("PRICEWATCH_BATCH_SIZE", 5)
THROTTLE_DELAY_SECONDS = _env_float("PRICEWATCH_THROTTLE_DELAY", 1.0)
MAX_RETRIES = _env_int("PRICEWATCH_MAX_RETRIES", 2)
RETRY_BACKOFF_SECONDS = _env_float("PRICEWATCH_RETRY_BACKOFF", 1.0)
PRODUCT_TIMEOUT_SECONDS = _env_float("PRICEWATCH_PRODUCT_TIMEOUT", 60.0)
NAVIGATION_TIMEOUT_MS = _env_int("PRICEWATCH_NAVIGATION_TIMEOUT_MS", 8000)

# Continuous mode
CONTINUOUS_RESCAN_DELAY_SECONDS = _env_float("PRICEWATCH_RESCAN_DELAY", 5.0)
KICKOFF_DELAY_SECONDS = _env_float("PRICEWATCH_KICKOFF_DELAY", 1.0)

# Storage
LOCK_TIMEOUT_SECONDS = _env_float("PRICEWATCH_LOCK_TIMEOUT", 10.0)
TOMBSTONE_TTL_DAYS = _env_int("PRICEWATCH_TOMBSTONE_TTL_DAYS", 7)
SCAN_LOG_MAX_ENTRIES = _env_int("PRICEWATCH_SCAN_LOG_MAX", 50)

# Retention
RETENTION_DAYS = _env_int("PRICEWATCH_RETENTION_DAYS", 60)
NEVER_CHECKED_GRACE_DAYS = _env_int("PRICEWATCH_GRACE_DAYS", 30)

# Notifications
FURTHER_DROP_THRESHOLD_PERCENT = _env_float("PRICEWATCH_FURTHER_DROP_PERCENT", 1.0)
NOTIFICATION_TIMEZONE = os.environ.get("PRICEWATCH_TIMEZONE", "Asia/Kolkata")
TELEGRAM_BOT_TOKEN = os.environ.get("TELEGRAM_BOT_TOKEN")
TELEGRAM_CHAT_ID = os.environ.get("TELEGRAM_CHAT_ID")

# Browser automation
MAX_PAGES_PER_BROWSER = _env_int("PRICEWATCH_MAX_PAGES_PER_BROWSER", 8)
AMAZON_COOKIES_FILE = os.environ.get("PRICEWATCH_AMAZON_COOKIES")

# Offer sync
OFFER_PRODUCT_TIMEOUT_SECONDS = _env_float("PRICEWATCH_OFFER_PRODUCT_TIMEOUT", 45.0)
OFFER_PAGE_RESET_EVERY_BATCHES = _env_int("PRICEWATCH_OFFER_PAGE_RESET_BATCHES", 5)
OFFER_PRODUCT_PAUSE_SECONDS = _env_float("PRICEWATCH_OFFER_PRODUCT_PAUSE", 0.2)
OFFER_BATCH_DELAY_SECONDS = _env_float("PRICEWATCH_OFFER_BATCH_DELAY", 1.0)
OFFER_SYNC_MAX_SECONDS = _env_float("PRICEWATCH_OFFER_SYNC_MAX", 30 * 60.0)
