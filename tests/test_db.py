import tempfile
import unittest
from pathlib import Path


def make_entry(scan_id: str, kind: str = "price", status=None):
    from pricewatch.models import ScanLogEntry, ScanStatus
    from pricewatch.utils import utcnow

    return ScanLogEntry(
        timestamp=utcnow(),
        status=status or ScanStatus.COMPLETED,
        scan_id=scan_id,
        kind=kind,
        products_scanned=3,
        success_count=2,
        failure_count=1,
        duration_seconds=1.5,
    )


class TestScanDatabase(unittest.TestCase):
    def setUp(self):
        from pricewatch.db import ScanDatabase

        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmp.name) / "test.db"
        self.db = ScanDatabase(self.db_path, max_log_entries=3)

    def tearDown(self):
        self._tmp.cleanup()

    def test_scanner_state_defaults_to_disabled(self):
        state = self.db.get_scanner_state()
        self.assertFalse(state["enabled"])
        self.assertIsNotNone(state["last_updated"])
        self.assertIsNone(state["last_scan_id"])

    def test_scanner_state_persists(self):
        from pricewatch.db import ScanDatabase

        before = self.db.get_scanner_state()["last_updated"]
        state = self.db.set_scanner_state(True)
        self.assertTrue(state["enabled"])
        self.assertGreaterEqual(state["last_updated"], before)

        # A fresh handle on the same file sees the flag.
        self.assertTrue(ScanDatabase(self.db_path).get_scanner_state()["enabled"])

    def test_scan_log_is_capped_and_oldest_first(self):
        for i in range(5):
            self.db.record_scan_run(make_entry(f"scan-{i}"))

        runs = self.db.get_scan_runs()
        self.assertEqual([r.scan_id for r in runs], ["scan-2", "scan-3", "scan-4"])
        self.assertEqual(runs[0].failure_count, 1)
        self.assertEqual(runs[0].duration_seconds, 1.5)

    def test_scan_log_filters(self):
        from pricewatch.models import ScanStatus

        self.db.record_scan_run(make_entry("p1"))
        self.db.record_scan_run(make_entry("o1", kind="offers"))
        self.db.record_scan_run(make_entry("p2", status=ScanStatus.ERROR))

        self.assertEqual([r.scan_id for r in self.db.get_scan_runs(kind="offers")], ["o1"])
        latest = self.db.get_scan_runs(limit=1)
        self.assertEqual([r.scan_id for r in latest], ["p2"])
        self.assertIs(latest[0].status, ScanStatus.ERROR)


class TestScannerStateController(unittest.TestCase):
    def setUp(self):
        from pricewatch.db import ScanDatabase

        self._tmp = tempfile.TemporaryDirectory()
        self.db = ScanDatabase(Path(self._tmp.name) / "test.db")

    def tearDown(self):
        self._tmp.cleanup()

    def test_toggle_and_record(self):
        from pricewatch.scanner_state import ScannerStateController

        controller = ScannerStateController(self.db)
        self.assertFalse(controller.is_enabled())

        state = controller.set(True)
        self.assertTrue(state.enabled)
        self.assertTrue(controller.is_enabled())

        controller.record_scan("scan-1")
        data = controller.get().to_dict()
        self.assertEqual(data["last_scan_id"], "scan-1")
        self.assertTrue(data["enabled"])

        controller.set(False)
        self.assertFalse(controller.is_enabled())


if __name__ == "__main__":
    unittest.main()
