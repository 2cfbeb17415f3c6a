import json
import tempfile
import unittest
from datetime import timedelta
from pathlib import Path


def make_product(product_id: str, url: str, desired: float = 1000.0, **kwargs):
    from pricewatch.models import Platform, TrackedProduct

    kwargs.setdefault("platform", Platform.MYNTRA)
    return TrackedProduct(id=product_id, url=url, desired_price=desired, **kwargs)


class TestProductStore(unittest.TestCase):
    def setUp(self):
        from pricewatch.storage import ProductStore

        self._tmp = tempfile.TemporaryDirectory()
        self.data_dir = Path(self._tmp.name)
        self.store = ProductStore(self.data_dir, lock_timeout=0.2)

    def tearDown(self):
        self._tmp.cleanup()

    def test_load_creates_empty_partition(self):
        from pricewatch.models import Platform

        self.assertEqual(self.store.load(Platform.AMAZON), [])
        self.assertTrue(self.store.partition_path(Platform.AMAZON).exists())

    def test_load_keeps_partition_created_by_concurrent_add(self):
        from unittest import mock

        from pricewatch.models import Platform

        store = self.store
        partition_path = store.partition_path
        raced = []

        class RacingPath(type(Path())):
            def exists(self):
                # The first check sees no file; an add lands right after it.
                if not raced:
                    raced.append(True)
                    store.add_product(make_product("y", "https://www.myntra.com/y"))
                    return False
                return super().exists()

        with mock.patch.object(store, "partition_path", lambda platform: RacingPath(partition_path(platform))):
            products = store.load(Platform.MYNTRA)

        self.assertEqual([p.url for p in products], ["https://www.myntra.com/y"])
        self.assertEqual([p.id for p in store.load(Platform.MYNTRA)], ["y"])

    def test_save_then_load_round_trip(self):
        from pricewatch.models import Platform
        from pricewatch.utils import utcnow

        now = utcnow()
        products = [
            make_product("a", "https://www.myntra.com/a", current_price=950.0, is_below=True, last_checked=now),
            make_product("b", "https://www.myntra.com/b", offers=["Rs. 899"], added_at=now),
        ]
        self.assertTrue(self.store.save(Platform.MYNTRA, products))
        self.assertEqual(self.store.load(Platform.MYNTRA), products)

    def test_legacy_list_layout_is_readable(self):
        from pricewatch.models import Platform

        path = self.store.partition_path(Platform.FLIPKART)
        path.write_text(json.dumps([{"id": "x", "url": "https://www.flipkart.com/x", "desired_price": 500}]))

        products = self.store.load(Platform.FLIPKART)
        self.assertEqual([p.id for p in products], ["x"])
        self.assertIs(products[0].platform, Platform.FLIPKART)

    def test_save_keeps_products_added_during_scan(self):
        from pricewatch.models import Platform

        self.store.add_product(make_product("a", "https://www.myntra.com/a"))
        snapshot = self.store.load(Platform.MYNTRA)

        self.store.add_product(make_product("y", "https://www.myntra.com/y"))
        snapshot[0].current_price = 800.0
        self.assertTrue(self.store.save(Platform.MYNTRA, snapshot))

        stored = {p.id: p for p in self.store.load(Platform.MYNTRA)}
        self.assertEqual(set(stored), {"a", "y"})
        self.assertEqual(stored["a"].current_price, 800.0)

    def test_save_does_not_reintroduce_products_deleted_during_scan(self):
        from pricewatch.models import Platform

        self.store.add_product(make_product("a", "https://www.myntra.com/a"))
        self.store.add_product(make_product("x", "https://www.myntra.com/x"))
        snapshot = self.store.load(Platform.MYNTRA)

        self.assertEqual(self.store.delete_products(["x"]), 1)
        self.assertTrue(self.store.save(Platform.MYNTRA, snapshot))

        self.assertEqual([p.id for p in self.store.load(Platform.MYNTRA)], ["a"])

    def test_save_appends_incoming_only_products(self):
        from pricewatch.models import Platform

        self.store.add_product(make_product("a", "https://www.myntra.com/a"))
        new = make_product("n", "https://www.myntra.com/n")
        self.assertTrue(self.store.save(Platform.MYNTRA, [new]))

        self.assertEqual([p.id for p in self.store.load(Platform.MYNTRA)], ["a", "n"])

    def test_merge_preserves_current_order(self):
        from pricewatch.storage import merge_products

        current = [make_product(i, f"https://www.myntra.com/{i}") for i in ("a", "b", "c")]
        incoming = [make_product("c", "https://www.myntra.com/c", current_price=1.0), make_product("a", "https://www.myntra.com/a")]

        merged = merge_products(current, incoming, deleted_ids={"z"})
        self.assertEqual([p.id for p in merged], ["a", "b", "c"])
        self.assertEqual(merged[2].current_price, 1.0)

    def test_save_fails_when_partition_lock_is_held(self):
        from pricewatch.models import Platform

        with self.store.partition_lock(Platform.MYNTRA):
            saved = self.store.save(Platform.MYNTRA, [make_product("a", "https://www.myntra.com/a")])

        self.assertFalse(saved)
        self.assertEqual(self.store.load(Platform.MYNTRA), [])

    def test_crud_raises_busy_when_lock_is_held(self):
        from pricewatch.models import Platform
        from pricewatch.storage import StoreBusyError

        with self.store.partition_lock(Platform.MYNTRA):
            with self.assertRaises(StoreBusyError):
                self.store.add_product(make_product("a", "https://www.myntra.com/a"))

    def test_add_detects_platform_and_assigns_id(self):
        from pricewatch.models import Platform, TrackedProduct

        added = self.store.add_product(TrackedProduct(id="", url="https://www.amazon.in/dp/B01", desired_price=500))

        self.assertTrue(added.id)
        self.assertIs(added.platform, Platform.AMAZON)
        self.assertIsNotNone(added.added_at)
        self.assertEqual([p.id for p in self.store.load(Platform.AMAZON)], [added.id])

    def test_add_rejects_duplicate_url_case_insensitively(self):
        from pricewatch.models import Platform
        from pricewatch.storage import DuplicateProductError

        self.store.add_product(make_product("a", "https://www.myntra.com/Shoe"))
        with self.assertRaises(DuplicateProductError):
            self.store.add_product(make_product("b", "https://WWW.MYNTRA.COM/shoe", platform=Platform.UNKNOWN))

    def test_add_products_reports_duplicates_within_batch(self):
        added, duplicates = self.store.add_products(
            [
                make_product("a", "https://www.myntra.com/a"),
                make_product("b", "https://www.myntra.com/A"),
                make_product("c", "https://www.myntra.com/c"),
            ]
        )
        self.assertEqual([p.id for p in added], ["a", "c"])
        self.assertEqual(duplicates, ["https://www.myntra.com/A"])

    def test_update_recomputes_is_below(self):
        self.store.add_product(make_product("a", "https://www.myntra.com/a", current_price=950.0))

        updated = self.store.update_product("a", {"desired_price": 900.0})
        self.assertFalse(updated.is_below)
        updated = self.store.update_product("a", {"desired_price": 960.0})
        self.assertTrue(updated.is_below)
        self.assertTrue(self.store.get_product("a").is_below)

    def test_update_rejects_url_of_another_product(self):
        from pricewatch.models import Platform
        from pricewatch.storage import DuplicateProductError

        self.store.add_product(make_product("a", "https://www.myntra.com/a"))
        self.store.add_product(make_product("b", "https://www.flipkart.com/b", platform=Platform.FLIPKART))

        with self.assertRaises(DuplicateProductError):
            self.store.update_product("a", {"url": "https://www.FLIPKART.com/b"})
        self.assertEqual(self.store.get_product("a").url, "https://www.myntra.com/a")

        # Re-saving a product's own URL in another case is not a duplicate.
        updated = self.store.update_product("a", {"url": "https://www.myntra.com/A"})
        self.assertEqual(updated.url, "https://www.myntra.com/A")

    def test_update_missing_product(self):
        from pricewatch.storage import ProductNotFoundError

        with self.assertRaises(ProductNotFoundError):
            self.store.update_product("nope", {"desired_price": 1.0})

    def test_platform_change_moves_partition(self):
        from pricewatch.models import Platform

        self.store.add_product(make_product("a", "https://www.myntra.com/a"))
        stale = self.store.load(Platform.MYNTRA)

        moved = self.store.update_product("a", {"platform": "Flipkart"})
        self.assertIs(moved.platform, Platform.FLIPKART)
        self.assertEqual(self.store.load(Platform.MYNTRA), [])
        self.assertEqual([p.id for p in self.store.load(Platform.FLIPKART)], ["a"])

        # A scan still holding the old copy must not bring it back.
        self.store.save(Platform.MYNTRA, stale)
        self.assertEqual(self.store.load(Platform.MYNTRA), [])

    def test_delete_platform(self):
        from pricewatch.models import Platform

        self.store.add_product(make_product("a", "https://www.myntra.com/a"))
        self.store.add_product(make_product("b", "https://www.myntra.com/b"))
        self.store.add_product(make_product("c", "https://www.flipkart.com/c", platform=Platform.FLIPKART))

        self.assertEqual(self.store.delete_platform("myntra"), 2)
        self.assertEqual([p.id for p in self.store.load_all()], ["c"])

    def test_set_offers_only_touches_offers(self):
        from pricewatch.models import Platform

        self.store.add_product(make_product("a", "https://www.myntra.com/a", offers=["old"]))
        self.store.add_product(make_product("b", "https://www.myntra.com/b", offers=["old"]))
        self.store.update_product("a", {"desired_price": 700.0})

        updated = self.store.set_offers(Platform.MYNTRA, {"a": ["Rs. 650"], "b": None, "gone": ["x"]})

        self.assertEqual(updated, 2)
        stored = {p.id: p for p in self.store.load(Platform.MYNTRA)}
        self.assertEqual(stored["a"].offers, ["Rs. 650"])
        self.assertEqual(stored["a"].desired_price, 700.0)
        self.assertIsNone(stored["b"].offers)


class TestRetention(unittest.TestCase):
    def setUp(self):
        from pricewatch.storage import ProductStore

        self._tmp = tempfile.TemporaryDirectory()
        self.store = ProductStore(Path(self._tmp.name))

    def tearDown(self):
        self._tmp.cleanup()

    def test_cleanup_policy(self):
        from pricewatch.models import Platform
        from pricewatch.utils import utcnow

        now = utcnow()
        products = [
            make_product("recent", "u1", last_checked=now - timedelta(days=5)),
            make_product("stale", "u2", last_checked=now - timedelta(days=90)),
            make_product("stale-but-below", "u3", last_checked=now - timedelta(days=90), is_below=True),
            make_product("new", "u4", added_at=now - timedelta(days=3)),
            make_product("old-never-checked", "u5", added_at=now - timedelta(days=45)),
        ]
        self.store.save(Platform.MYNTRA, products)

        removed = self.store.cleanup_stale_products(now)

        self.assertEqual(removed, 2)
        self.assertEqual(
            [p.id for p in self.store.load(Platform.MYNTRA)],
            ["recent", "stale-but-below", "new"],
        )

    def test_tombstones_expire(self):
        from pricewatch.models import Platform
        from pricewatch.storage import ProductStore

        store = ProductStore(Path(self._tmp.name), tombstone_ttl=timedelta(seconds=0))
        store.add_product(make_product("x", "https://www.myntra.com/x"))
        snapshot = store.load(Platform.MYNTRA)
        store.delete_products(["x"])

        # With no retained tombstone a later save appends the product again.
        store.save(Platform.MYNTRA, snapshot)
        self.assertEqual([p.id for p in store.load(Platform.MYNTRA)], ["x"])


if __name__ == "__main__":
    unittest.main()
