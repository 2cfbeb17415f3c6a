"""
Amazon product extractor.

Amazon blocks automated browsers aggressively, so pages get stealth patches
and, when configured, the cookies of a signed-in session. A page without a
price is treated as a block rather than a real product state.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from playwright.async_api import Page
from playwright_stealth import Stealth

from .. import config
from ..models import Platform, ScrapedProduct
from .base import BaseExtractor, ScrapeError, dedupe_offers, first_price, first_text

logger = logging.getLogger(__name__)

PRICE_SELECTORS = [
    "#corePriceDisplay_desktop_feature_div .priceToPay .a-offscreen",
    "#corePrice_desktop .apexPriceToPay .a-offscreen",
    "#corePriceDisplay_desktop_feature_div .a-price .a-offscreen",
    ".a-price .a-offscreen",
]
MRP_SELECTORS = [
    "#corePriceDisplay_desktop_feature_div .basisPrice .a-offscreen",
    ".basisPrice .a-text-price .a-offscreen",
    "#corePrice_desktop .a-text-price .a-offscreen",
]
NAME_SELECTORS = ["#productTitle", ".product-title", ".product-name", "h1"]
BRAND_SELECTORS = ["#bylineInfo", ".product-by-line", ".brand", "#brand"]
OFFER_SELECTOR = ".a-truncate-full"

BYLINE_RE = re.compile(r"^(Visit the|Brand:)\s*", re.IGNORECASE)
STORE_SUFFIX_RE = re.compile(r"\s+Store$", re.IGNORECASE)
SEE_MORE_RE = re.compile(r"See\s+(Details|more)", re.IGNORECASE)


def clean_byline(text: str) -> str | None:
    """'Visit the Puma Store' -> 'Puma'; 'Brand: Puma' -> 'Puma'."""
    brand = STORE_SUFFIX_RE.sub("", BYLINE_RE.sub("", text.strip())).strip()
    return brand or None


def load_cookies(path: str | Path | None) -> list[dict]:
    """Read exported browser cookies, keeping the fields Playwright accepts."""
    if not path:
        return []
    path = Path(path)
    if not path.exists():
        return []
    try:
        raw = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Could not read Amazon cookies from {path}: {e}")
        return []

    cookies = []
    for item in raw if isinstance(raw, list) else []:
        if not isinstance(item, dict) or not item.get("name"):
            continue
        cookie = {
            "name": item["name"],
            "value": str(item.get("value", "")),
            "domain": item.get("domain", ".amazon.in"),
            "path": item.get("path", "/"),
            "httpOnly": bool(item.get("httpOnly", False)),
            "secure": bool(item.get("secure", True)),
        }
        expires = item.get("expires", item.get("expirationDate"))
        if isinstance(expires, (int, float)) and expires > 0:
            cookie["expires"] = float(expires)
        cookies.append(cookie)
    return cookies


class AmazonExtractor(BaseExtractor):
    platform = Platform.AMAZON
    display_name = "Amazon"
    blocked_on_zero_price = True
    preserve_on_failure = True
    settle_delay_ms = 800

    def __init__(self, cookies_file: str | Path | None = config.AMAZON_COOKIES_FILE):
        self.cookies_file = cookies_file
        self._cookies: list[dict] | None = None

    @property
    def cookies(self) -> list[dict]:
        if self._cookies is None:
            self._cookies = load_cookies(self.cookies_file)
            if self._cookies:
                logger.info(f"Loaded {len(self._cookies)} Amazon cookies")
        return self._cookies

    async def page_options(self) -> dict:
        options = await super().page_options()
        options["cookies"] = self.cookies
        return options

    async def configure_page(self, page: Page) -> None:
        await Stealth().apply_stealth_async(page)

    def parse_product(self, html: str, url: str) -> ScrapedProduct:
        soup = self.soup(html)

        if soup.select_one("form[action*='validateCaptcha']"):
            raise ScrapeError(f"Amazon captcha page for {url}")

        name = first_text(soup, NAME_SELECTORS)
        price = first_price(soup, PRICE_SELECTORS) or 0.0
        mrp = first_price(soup, MRP_SELECTORS)
        byline = first_text(soup, BRAND_SELECTORS)

        return ScrapedProduct(
            name=name,
            brand=clean_byline(byline) if byline else None,
            price=price,
            mrp=mrp if mrp and mrp > price else None,
            platform=self.platform,
            url=url,
        )

    def parse_offers(self, html: str) -> list[str] | None:
        soup = self.soup(html)
        raw = [element.get_text(" ", strip=True) for element in soup.select(OFFER_SELECTOR)]
        offers = dedupe_offers([SEE_MORE_RE.sub("", text) for text in raw])
        return offers or None
