"""Flipkart product extractor."""

from __future__ import annotations

import re

from ..models import Platform, ScrapedProduct
from .base import BaseExtractor, ScrapeError, dedupe_offers, first_price, first_text

PRICE_SELECTORS = [
    ".Nx9bqj.CxhGGd",
    "._30jeq3._16Jk6d",
    "._30jeq3",
    ".dyC4hf ._30jeq3",
    '[data-testid="price"]',
]
MRP_SELECTORS = [
    "div.yRaY8j.A6\\+E6v",
    "._3I9_wc._2p6lqe",
    "._3I9_wc",
    ".dyC4hf ._3I9_wc",
]
NAME_SELECTORS = [".B_NuCI", '[data-testid="product-name"]', ".VU-ZEz", "._35KyD6", "h1"]
BRAND_SELECTORS = ['[data-testid="brand"]', ".G6XhRU", "span[class*=brand]"]
OFFER_SELECTORS = [
    "._3TT44I",
    "._3IFQ6r",
    "._2-n-Lg",
    ".dyC3Xc",
    ".JDLK74",
    ".QNqrxC",
    ".WT_FyS",
    ".KxGGM8",
    '[data-testid="offer-list"]',
    "li[class*=offer]",
]

OFFER_SEPARATOR_RE = re.compile(r"(?=Bank Offer|Partner Offer|Special Price|No Cost EMI|EMI starting|Combo Offer)")
OFFER_NOISE_RE = re.compile(r"T&C Apply|Terms and Conditions Apply|View Plans|View Details|View T&C", re.IGNORECASE)


def split_offers(text: str) -> list[str]:
    """Split a run of concatenated offers at the known offer-type labels."""
    text = " ".join(OFFER_NOISE_RE.sub("", text).split())
    if len(text) <= 50:
        return [text]
    parts = [part.strip() for part in OFFER_SEPARATOR_RE.split(text)]
    parts = [part for part in parts if len(part) > 5]
    return parts or [text]


class FlipkartExtractor(BaseExtractor):
    platform = Platform.FLIPKART
    display_name = "Flipkart"

    def parse_product(self, html: str, url: str) -> ScrapedProduct:
        soup = self.soup(html)

        price = first_price(soup, PRICE_SELECTORS)
        if not price:
            raise ScrapeError(f"Flipkart returned no usable price for {url}")

        name = first_text(soup, NAME_SELECTORS)
        if not name:
            raise ScrapeError(f"Flipkart returned no product name for {url}")

        # Flipkart rarely marks the brand up separately; titles lead with it.
        brand = first_text(soup, BRAND_SELECTORS) or name.split()[0]
        mrp = first_price(soup, MRP_SELECTORS)

        return ScrapedProduct(
            name=name,
            brand=brand,
            price=price,
            mrp=mrp if mrp and mrp > price else None,
            platform=self.platform,
            url=url,
        )

    def parse_offers(self, html: str) -> list[str] | None:
        soup = self.soup(html)
        offers: list[str] = []
        for selector in OFFER_SELECTORS:
            for element in soup.select(selector):
                text = element.get_text(" ", strip=True)
                if len(text) >= 5:
                    offers.extend(split_offers(text))
        offers = dedupe_offers(offers)
        return offers or None
