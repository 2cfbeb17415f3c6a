import tempfile
import unittest
from pathlib import Path

from fastapi.testclient import TestClient


class FakeNotifier:
    def __init__(self):
        self.messages: list[str] = []

    async def send(self, message: str) -> bool:
        self.messages.append(message)
        return True


class TestRoutes(unittest.TestCase):
    def setUp(self):
        from pricewatch.db import ScanDatabase
        from pricewatch.storage import ProductStore
        from pricewatch.webapp.app import create_app

        self._tmp = tempfile.TemporaryDirectory()
        data_dir = Path(self._tmp.name)
        self.store = ProductStore(data_dir)
        self.db = ScanDatabase(data_dir / "test.db")
        self.app = create_app(
            store=self.store,
            db=self.db,
            notifier=FakeNotifier(),
            extractors={},
            auto_resume=False,
            shutdown_browser=False,
        )

    def tearDown(self):
        self._tmp.cleanup()

    def test_add_and_list_products(self):
        with TestClient(self.app) as client:
            resp = client.post(
                "/api/products",
                json={"url": "https://www.myntra.com/shoe/123", "desired_price": 1500},
            )
            self.assertEqual(resp.status_code, 201)
            product = resp.json()
            self.assertEqual(product["platform"], "Myntra")
            self.assertFalse(product["is_below"])
            self.assertTrue(product["id"])

            resp = client.get("/api/products")
            self.assertEqual([p["id"] for p in resp.json()["products"]], [product["id"]])

            resp = client.get("/api/products", params={"platform": "amazon"})
            self.assertEqual(resp.json()["products"], [])

    def test_duplicate_url_conflicts(self):
        with TestClient(self.app) as client:
            body = {"url": "https://www.amazon.in/dp/B01", "desired_price": 999}
            self.assertEqual(client.post("/api/products", json=body).status_code, 201)

            body["url"] = "https://www.AMAZON.in/dp/B01"
            self.assertEqual(client.post("/api/products", json=body).status_code, 409)

    def test_batch_add_reports_duplicates(self):
        with TestClient(self.app) as client:
            resp = client.post(
                "/api/products",
                json=[
                    {"url": "https://www.flipkart.com/a", "desired_price": 500},
                    {"url": "https://www.flipkart.com/a", "desired_price": 400},
                    {"url": "https://www.myntra.com/b", "desired_price": 700},
                ],
            )
            self.assertEqual(resp.status_code, 201)
            data = resp.json()
            self.assertEqual(len(data["added"]), 2)
            self.assertEqual(data["duplicates"], ["https://www.flipkart.com/a"])

    def test_invalid_desired_price_rejected(self):
        with TestClient(self.app) as client:
            resp = client.post("/api/products", json={"url": "https://www.myntra.com/x", "desired_price": 0})
            self.assertEqual(resp.status_code, 422)

    def test_get_update_and_delete_product(self):
        with TestClient(self.app) as client:
            product = client.post(
                "/api/products", json={"url": "https://www.myntra.com/x", "desired_price": 1000}
            ).json()
            pid = product["id"]

            self.assertEqual(client.get(f"/api/products/{pid}").json()["url"], "https://www.myntra.com/x")

            resp = client.patch(f"/api/products/{pid}", json={"desired_price": 1200, "name": "Trail Shoe"})
            self.assertEqual(resp.status_code, 200)
            self.assertEqual(resp.json()["desired_price"], 1200)
            self.assertEqual(resp.json()["name"], "Trail Shoe")

            self.assertEqual(client.delete(f"/api/products/{pid}").json(), {"deleted": 1})
            self.assertEqual(client.get(f"/api/products/{pid}").status_code, 404)
            self.assertEqual(client.delete(f"/api/products/{pid}").status_code, 404)
            self.assertEqual(client.patch(f"/api/products/{pid}", json={"name": "x"}).status_code, 404)

    def test_update_rejects_null_required_fields(self):
        with TestClient(self.app) as client:
            product = client.post(
                "/api/products", json={"url": "https://www.myntra.com/x", "desired_price": 1000}
            ).json()
            pid = product["id"]

            self.assertEqual(client.patch(f"/api/products/{pid}", json={"url": None}).status_code, 422)
            self.assertEqual(client.patch(f"/api/products/{pid}", json={"desired_price": None}).status_code, 422)

            stored = client.get(f"/api/products/{pid}").json()
            self.assertEqual(stored["url"], "https://www.myntra.com/x")
            self.assertEqual(stored["desired_price"], 1000)

            # Optional descriptive fields can still be cleared.
            client.patch(f"/api/products/{pid}", json={"name": "Trail Shoe"})
            resp = client.patch(f"/api/products/{pid}", json={"name": None})
            self.assertEqual(resp.status_code, 200)
            self.assertIsNone(resp.json()["name"])

    def test_update_to_tracked_url_conflicts(self):
        with TestClient(self.app) as client:
            first = client.post("/api/products", json={"url": "https://www.myntra.com/a", "desired_price": 100}).json()
            client.post("/api/products", json={"url": "https://www.myntra.com/b", "desired_price": 100})

            resp = client.patch(f"/api/products/{first['id']}", json={"url": "https://www.myntra.com/B"})
            self.assertEqual(resp.status_code, 409)
            self.assertEqual(client.get(f"/api/products/{first['id']}").json()["url"], "https://www.myntra.com/a")

    def test_bulk_delete(self):
        with TestClient(self.app) as client:
            ids = [
                client.post("/api/products", json={"url": url, "desired_price": 100}).json()["id"]
                for url in ("https://www.myntra.com/1", "https://www.amazon.in/dp/2", "https://www.flipkart.com/3")
            ]

            resp = client.delete("/api/products", params={"ids": f"{ids[0]},{ids[1]},missing"})
            self.assertEqual(resp.json(), {"deleted": 2})
            self.assertEqual([p["id"] for p in client.get("/api/products").json()["products"]], [ids[2]])

            self.assertEqual(client.delete("/api/products", params={"ids": " , "}).status_code, 400)

    def test_delete_platform_products(self):
        with TestClient(self.app) as client:
            client.post("/api/products", json={"url": "https://www.myntra.com/1", "desired_price": 100})
            client.post("/api/products", json={"url": "https://www.myntra.com/2", "desired_price": 100})
            client.post("/api/products", json={"url": "https://www.amazon.in/dp/3", "desired_price": 100})

            resp = client.delete("/api/platforms/myntra/products")
            self.assertEqual(resp.json(), {"deleted": 2, "platform": "Myntra"})
            self.assertEqual(len(client.get("/api/products").json()["products"]), 1)

            self.assertEqual(client.delete("/api/platforms/ebay/products").status_code, 404)

    def test_scanner_state_toggle(self):
        with TestClient(self.app) as client:
            self.assertFalse(client.get("/api/scanner-state").json()["enabled"])

            resp = client.post("/api/scanner-state", json={"enabled": True})
            self.assertTrue(resp.json()["enabled"])
            self.assertTrue(self.db.get_scanner_state()["enabled"])

            resp = client.post("/api/scanner-state", json={"enabled": False})
            self.assertFalse(resp.json()["enabled"])

    def test_scan_conflicts_while_running(self):
        with TestClient(self.app) as client:
            guard = self.app.state.orchestrator.guard
            self.assertTrue(guard.try_start())
            try:
                self.assertEqual(client.post("/api/scan").status_code, 409)
                resp = client.post("/api/sync-offers")
                self.assertEqual(resp.status_code, 409)
                self.assertEqual(resp.json()["detail"], "Price scan in progress")
                self.assertTrue(client.get("/api/scan/status").json()["in_progress"])
            finally:
                guard.finish()

    def test_start_scan_and_read_logs(self):
        with TestClient(self.app) as client:
            resp = client.post("/api/scan")
            self.assertEqual(resp.status_code, 202)
            scan_id = resp.json()["scan_id"]
            self.assertEqual(resp.json()["status"], "started")

        # Leaving the client runs shutdown, which waits for the scan task.
        with TestClient(self.app) as client:
            logs = client.get("/api/scan-logs").json()["logs"]
            self.assertEqual([entry["scan_id"] for entry in logs], [scan_id])
            self.assertEqual(logs[0]["message"], "No products to scan")

            self.assertEqual(client.get("/api/scan-logs", params={"kind": "offers"}).json()["logs"], [])
            self.assertEqual(client.get("/api/scan-logs", params={"kind": "bogus"}).status_code, 422)

    def test_stop_when_idle(self):
        with TestClient(self.app) as client:
            self.assertEqual(client.post("/api/scan/stop").json()["status"], "idle")

    def test_status_and_platforms(self):
        with TestClient(self.app) as client:
            status = client.get("/api/scan/status").json()
            self.assertFalse(status["in_progress"])
            self.assertFalse(status["offer_sync_in_progress"])
            self.assertIsNone(status["last_offer_sync"])
            self.assertIn("scanner_state", status)

            platforms = client.get("/api/platforms").json()["platforms"]
            self.assertEqual(platforms, ["Amazon", "Flipkart", "Myntra"])


if __name__ == "__main__":
    unittest.main()
