import unittest


class TestScanGuard(unittest.TestCase):
    def test_only_one_scan_at_a_time(self):
        from pricewatch.scan_guard import ScanGuard

        guard = ScanGuard()
        self.assertTrue(guard.try_start())
        self.assertFalse(guard.try_start())
        self.assertTrue(guard.in_progress)

        guard.finish()
        self.assertFalse(guard.in_progress)
        self.assertTrue(guard.try_start())

    def test_stop_is_noop_when_idle(self):
        from pricewatch.scan_guard import ScanGuard

        guard = ScanGuard()
        self.assertFalse(guard.request_stop())
        self.assertFalse(guard.stop_requested)

        # A stale stop must not leak into the next scan.
        self.assertTrue(guard.try_start())
        self.assertFalse(guard.stop_requested)

    def test_stop_while_running_then_reset(self):
        from pricewatch.scan_guard import ScanGuard

        guard = ScanGuard()
        guard.try_start()
        self.assertTrue(guard.request_stop())
        self.assertTrue(guard.stop_requested)

        guard.finish()
        self.assertFalse(guard.stop_requested)
        self.assertFalse(guard.in_progress)


if __name__ == "__main__":
    unittest.main()
