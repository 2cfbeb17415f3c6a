import unittest


class TestParsePrice(unittest.TestCase):
    def test_rupee_amounts(self):
        from pricewatch.utils import parse_price

        self.assertEqual(parse_price("₹1,299"), (1299.0, "INR"))
        self.assertEqual(parse_price("₹ 950"), (950.0, "INR"))
        self.assertEqual(parse_price("Rs. 1,29,999.00"), (129999.0, "INR"))

    def test_mrp_prefix_is_not_read_as_currency(self):
        from pricewatch.utils import parse_price

        self.assertEqual(parse_price("M.R.P.: ₹1,999.00"), (1999.0, "INR"))
        self.assertEqual(parse_price("MRP ₹2499"), (2499.0, "INR"))

    def test_decimal_comma(self):
        from pricewatch.utils import parse_price

        self.assertEqual(parse_price("19,99 €"), (19.99, "EUR"))

    def test_unparseable(self):
        from pricewatch.utils import parse_price

        self.assertEqual(parse_price(""), (None, None))
        self.assertEqual(parse_price(None), (None, None))
        self.assertEqual(parse_price("Currently unavailable")[0], None)


class TestDetectPlatform(unittest.TestCase):
    def test_known_hosts(self):
        from pricewatch.models import Platform
        from pricewatch.utils import detect_platform

        self.assertIs(detect_platform("https://www.myntra.com/shoes/nike/123/buy"), Platform.MYNTRA)
        self.assertIs(detect_platform("https://www.amazon.in/dp/B0TEST"), Platform.AMAZON)
        self.assertIs(detect_platform("https://amzn.in/d/abc"), Platform.AMAZON)
        self.assertIs(detect_platform("https://www.flipkart.com/item/p/itm1"), Platform.FLIPKART)

    def test_unknown_hosts(self):
        from pricewatch.models import Platform
        from pricewatch.utils import detect_platform

        self.assertIs(detect_platform("https://shop.example.com/x"), Platform.UNKNOWN)
        self.assertIs(detect_platform("not a url"), Platform.UNKNOWN)

    def test_platform_from_value_is_case_insensitive(self):
        from pricewatch.models import Platform

        self.assertIs(Platform.from_value("amazon"), Platform.AMAZON)
        self.assertIs(Platform.from_value("FLIPKART"), Platform.FLIPKART)
        self.assertIs(Platform.from_value("ebay"), Platform.UNKNOWN)
        self.assertIs(Platform.from_value(None), Platform.UNKNOWN)


class TestIsBelow(unittest.TestCase):
    def test_compute_is_below(self):
        from pricewatch.models import compute_is_below

        self.assertTrue(compute_is_below(950, 1000))
        self.assertTrue(compute_is_below(1000, 1000))
        self.assertFalse(compute_is_below(1001, 1000))
        self.assertFalse(compute_is_below(0, 1000))
        self.assertFalse(compute_is_below(None, 1000))


if __name__ == "__main__":
    unittest.main()
