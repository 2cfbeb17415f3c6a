"""Base extractor class for all platforms."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from bs4 import BeautifulSoup
from playwright.async_api import Page

from .. import config
from ..models import Platform, ScrapedProduct
from ..utils import parse_price
from .browser_pool import get_page

logger = logging.getLogger(__name__)


class ScrapeError(Exception):
    """The page was blocked, malformed, or missing the data we need."""


def first_text(soup: BeautifulSoup, selectors: list[str]) -> str:
    """Text of the first element matching any selector, in selector order."""
    for selector in selectors:
        for element in soup.select(selector):
            text = element.get_text(" ", strip=True)
            if text:
                return text
    return ""


def first_price(soup: BeautifulSoup, selectors: list[str]) -> float | None:
    """First positive amount found under any selector, in selector order."""
    for selector in selectors:
        for element in soup.select(selector):
            amount, _ = parse_price(element.get_text(" ", strip=True))
            if amount:
                return amount
    return None


def meta_price(soup: BeautifulSoup) -> float | None:
    tag = soup.select_one('meta[property="product:price:amount"], meta[itemprop="price"]')
    if tag and tag.get("content"):
        amount, _ = parse_price(str(tag["content"]))
        return amount
    return None


def dedupe_offers(offers: list[str], min_length: int = 5) -> list[str]:
    """Normalize whitespace and drop short or case-insensitive duplicate offers."""
    seen: set[str] = set()
    cleaned: list[str] = []
    for offer in offers:
        text = " ".join(offer.split())
        if len(text) < min_length or text.lower() in seen:
            continue
        seen.add(text.lower())
        cleaned.append(text)
    return cleaned


class BaseExtractor(ABC):
    """Abstract base class for per-platform product extractors.

    Subclasses supply the HTML parsing; navigation and page lifecycle go
    through the shared browser pool.
    """

    platform: Platform
    display_name: str
    # A missing or zero price is read as the site blocking us: keep the old record.
    blocked_on_zero_price: bool = False
    # After retries are exhausted, keep every field including last_checked.
    preserve_on_failure: bool = False
    locale: str | None = "en-IN"
    user_agent: str | None = None
    navigation_timeout_ms: int = config.NAVIGATION_TIMEOUT_MS
    settle_delay_ms: int = 1000

    @abstractmethod
    def parse_product(self, html: str, url: str) -> ScrapedProduct:
        """Extract normalized product fields from page HTML."""
        ...

    def parse_offers(self, html: str) -> list[str] | None:
        """Extract promotional offer texts. Platforms without offers return None."""
        return None

    async def page_options(self) -> dict:
        return {"user_agent": self.user_agent, "locale": self.locale}

    async def configure_page(self, page: Page) -> None:
        """Hook run on a fresh page before navigation."""

    async def prepare_page(self, page: Page) -> None:
        """Give client-side rendering a moment and nudge lazy content."""
        await page.wait_for_timeout(self.settle_delay_ms)
        await page.evaluate("window.scrollBy(0, 300)")

    async def scrape(self, url: str) -> ScrapedProduct:
        """Load ``url`` in a pooled page and extract the product."""
        clean_url = url.replace("httphttp", "http", 1) if url.startswith("httphttp") else url
        async with get_page(**(await self.page_options())) as page:
            logger.debug(f"[{self.platform.value}] Loading {clean_url}")
            await self.configure_page(page)
            await page.goto(clean_url, wait_until="domcontentloaded", timeout=self.navigation_timeout_ms)
            await self.prepare_page(page)
            html = await page.content()
        return self.parse_product(html, url)

    async def scrape_offers(self, page: Page, url: str) -> list[str] | None:
        """Load ``url`` in an already-open page and extract offers."""
        await self.configure_page(page)
        await page.goto(url, wait_until="domcontentloaded", timeout=self.navigation_timeout_ms)
        await self.prepare_page(page)
        return self.parse_offers(await page.content())

    @staticmethod
    def soup(html: str) -> BeautifulSoup:
        return BeautifulSoup(html, "lxml")
