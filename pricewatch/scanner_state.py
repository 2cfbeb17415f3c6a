"""Persisted continuous-scanning flag."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from .db import ScanDatabase

logger = logging.getLogger(__name__)


@dataclass
class ScannerState:
    enabled: bool
    last_updated: datetime | None
    last_scan_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "last_scan_id": self.last_scan_id,
        }


class ScannerStateController:
    """Reads and writes the continuous-mode flag.

    The flag is advisory: the orchestrator consults it before scheduling a
    follow-up scan, it does not schedule anything by itself.
    """

    def __init__(self, db: ScanDatabase):
        self.db = db

    def get(self) -> ScannerState:
        return ScannerState(**self.db.get_scanner_state())

    def set(self, enabled: bool) -> ScannerState:
        state = ScannerState(**self.db.set_scanner_state(enabled))
        logger.info(f"Continuous scanning {'enabled' if enabled else 'disabled'}")
        return state

    def is_enabled(self) -> bool:
        return self.get().enabled

    def record_scan(self, scan_id: str) -> None:
        self.db.set_last_scan_id(scan_id)
