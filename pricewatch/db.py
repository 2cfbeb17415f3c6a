"""SQLite database for scanner state and scan history."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from . import config
from .models import ScanLogEntry, ScanStatus
from .utils import parse_timestamp, utcnow


class ScanDatabase:
    """SQLite database holding the continuous-mode flag and the bounded scan log."""

    def __init__(self, db_path: Path | None = None, max_log_entries: int = config.SCAN_LOG_MAX_ENTRIES):
        self.db_path = Path(db_path) if db_path else config.DATA_DIR / config.DB_FILENAME
        self.max_log_entries = max_log_entries
        self._init_db()

    def _init_db(self):
        """Initialize the database schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with sqlite3.connect(self.db_path) as conn:
            # Single-row table for the continuous scanning flag
            conn.execute("""
                CREATE TABLE IF NOT EXISTS scanner_state (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    continuous_enabled BOOLEAN NOT NULL DEFAULT 0,
                    last_updated TEXT NOT NULL,
                    last_scan_id TEXT
                )
            """)
            conn.execute(
                """
                INSERT OR IGNORE INTO scanner_state (id, continuous_enabled, last_updated)
                VALUES (1, 0, ?)
                """,
                (utcnow().isoformat(),),
            )

            # Scan runs - bounded history of price scans and offer syncs
            conn.execute("""
                CREATE TABLE IF NOT EXISTS scan_runs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    scan_id TEXT NOT NULL,
                    kind TEXT NOT NULL DEFAULT 'price',
                    status TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    products_scanned INTEGER DEFAULT 0,
                    success_count INTEGER DEFAULT 0,
                    failure_count INTEGER DEFAULT 0,
                    notification_count INTEGER DEFAULT 0,
                    cleanup_count INTEGER DEFAULT 0,
                    duration_seconds REAL DEFAULT 0,
                    is_continuous BOOLEAN DEFAULT 0,
                    stopped_manually BOOLEAN DEFAULT 0,
                    message TEXT,
                    error_message TEXT
                )
            """)

            conn.commit()

    # --- scanner state ---

    def get_scanner_state(self) -> dict:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute(
                "SELECT continuous_enabled, last_updated, last_scan_id FROM scanner_state WHERE id = 1"
            ).fetchone()

        return {
            "enabled": bool(row["continuous_enabled"]),
            "last_updated": parse_timestamp(row["last_updated"]),
            "last_scan_id": row["last_scan_id"],
        }

    def set_scanner_state(self, enabled: bool) -> dict:
        now = utcnow().isoformat()
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "UPDATE scanner_state SET continuous_enabled = ?, last_updated = ? WHERE id = 1",
                (1 if enabled else 0, now),
            )
            conn.commit()
        return self.get_scanner_state()

    def set_last_scan_id(self, scan_id: str) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("UPDATE scanner_state SET last_scan_id = ? WHERE id = 1", (scan_id,))
            conn.commit()

    # --- scan log ---

    def record_scan_run(self, entry: ScanLogEntry) -> None:
        """Append a scan log entry and drop the oldest beyond the cap."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO scan_runs (
                    scan_id, kind, status, timestamp, products_scanned, success_count,
                    failure_count, notification_count, cleanup_count, duration_seconds,
                    is_continuous, stopped_manually, message, error_message
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.scan_id,
                    entry.kind,
                    entry.status.value,
                    entry.timestamp.isoformat(),
                    entry.products_scanned,
                    entry.success_count,
                    entry.failure_count,
                    entry.notification_count,
                    entry.cleanup_count,
                    entry.duration_seconds,
                    1 if entry.is_continuous else 0,
                    1 if entry.stopped_manually else 0,
                    entry.message,
                    entry.error,
                ),
            )
            conn.execute(
                """
                DELETE FROM scan_runs
                WHERE id NOT IN (
                    SELECT id FROM scan_runs ORDER BY id DESC LIMIT ?
                )
                """,
                (self.max_log_entries,),
            )
            conn.commit()

    def get_scan_runs(self, limit: int | None = None, kind: str | None = None) -> list[ScanLogEntry]:
        """Return scan log entries, oldest first."""
        query = "SELECT * FROM scan_runs"
        params: list = []
        if kind:
            query += " WHERE kind = ?"
            params.append(kind)
        query += " ORDER BY id DESC"
        if limit:
            query += " LIMIT ?"
            params.append(limit)

        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(query, params).fetchall()

        return [self._row_to_entry(row) for row in reversed(rows)]

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> ScanLogEntry:
        return ScanLogEntry(
            timestamp=parse_timestamp(row["timestamp"]),
            status=ScanStatus(row["status"]),
            scan_id=row["scan_id"],
            kind=row["kind"],
            products_scanned=row["products_scanned"] or 0,
            success_count=row["success_count"] or 0,
            failure_count=row["failure_count"] or 0,
            notification_count=row["notification_count"] or 0,
            cleanup_count=row["cleanup_count"] or 0,
            duration_seconds=row["duration_seconds"] or 0.0,
            is_continuous=bool(row["is_continuous"]),
            stopped_manually=bool(row["stopped_manually"]),
            message=row["message"],
            error=row["error_message"],
        )
