"""Myntra product extractor."""

from __future__ import annotations

import re

from ..models import Platform, ScrapedProduct
from .base import BaseExtractor, ScrapeError, first_price, first_text, meta_price

PRICE_SELECTORS = [".pdp-price strong", ".pdp-price"]
MRP_SELECTORS = [".pdp-mrp s", ".pdp-discount s"]
NAME_SELECTORS = [".pdp-title", ".pdp-name"]
BRAND_SELECTORS = [".pdp-title .brand-name", ".brand", ".pdp-title"]
OFFER_SELECTOR = ".pdp-offers-container div.pdp-offers-offer div"

BEST_PRICE_RE = re.compile(r"Best Price:\s*Rs\.\s*(\d+(?:\.\d+)?)", re.IGNORECASE)


class MyntraExtractor(BaseExtractor):
    platform = Platform.MYNTRA
    display_name = "Myntra"

    def parse_product(self, html: str, url: str) -> ScrapedProduct:
        soup = self.soup(html)

        price = meta_price(soup) or first_price(soup, PRICE_SELECTORS)
        if not price:
            raise ScrapeError(f"No price found on Myntra page {url}")

        mrp = first_price(soup, MRP_SELECTORS)
        brand = first_text(soup, BRAND_SELECTORS) or None
        # .pdp-title holds the brand and .pdp-name the product name
        name = first_text(soup, [".pdp-name"]) or first_text(soup, NAME_SELECTORS)
        if not name:
            title = soup.title.get_text(strip=True) if soup.title else ""
            name = title.split("|")[0].strip()

        return ScrapedProduct(
            name=name,
            brand=brand,
            price=price,
            mrp=mrp if mrp and mrp > price else None,
            platform=self.platform,
            url=url,
        )

    def parse_offers(self, html: str) -> list[str] | None:
        """Myntra only reports the "Best Price" coupon offer."""
        soup = self.soup(html)
        for element in soup.select(OFFER_SELECTOR):
            text = element.get_text(" ", strip=True)
            if len(text) < 5 or "best price" not in text.lower():
                continue
            match = BEST_PRICE_RE.search(text)
            if match:
                return [f"Rs. {match.group(1)}"]
        return None
