# scraper.py
import asyncio
import math
from collections.abc import Awaitable
from typing import Optional, Protocol

from aiohttp import ClientSession, ClientTimeout
from bs4 import BeautifulSoup, Tag

from pricewatch.core.rate_limiter import DomainRateLimiter
from pricewatch.features.offers import parse_price
from pricewatch.models import ScrapeResult, platform_from_url, registered_domain
from pricewatch.utils.logging_config import get_logger

logger = get_logger(__name__)

HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",  # noqa: E501
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.7",
    "Cache-Control": "no-cache",
}

# Tried in order; the first selector yielding a price wins
PLATFORM_SELECTORS: dict[str, tuple[str, ...]] = {
    "amazon": (
        "#corePrice_feature_div .a-offscreen",
        "#corePriceDisplay_desktop_feature_div .a-offscreen",
        "#priceblock_dealprice",
        "#priceblock_ourprice",
        ".a-price .a-offscreen",
    ),
    "flipkart": ("div.Nx9bqj", "div._30jeq3"),
    "ebay": (".x-price-primary span", "#prcIsum"),
    "walmart": ('[itemprop="price"]',),
    "bestbuy": (".priceView-customer-price span",),
}

# Microdata / OpenGraph markup most shops emit
GENERIC_SELECTORS: tuple[str, ...] = (
    'meta[itemprop="price"]',
    'meta[property="product:price:amount"]',
    'meta[property="og:price:amount"]',
    '[itemprop="price"]',
    '[data-price]',
)


class Scraper(Protocol):
    """Fetch a product page and read its price; None when no price is found"""

    def __call__(self, url: str, platform: str) -> Awaitable[Optional[ScrapeResult]]: ...


class ScrapeGateway:
    """One bounded scrape attempt per product creation.

    Failures never propagate: a timeout, an exception inside the scraper or a
    missing/invalid price all come back as ``None``.
    """

    def __init__(self, scraper: Scraper, timeout: float = 15.0) -> None:
        self.scraper = scraper
        self.timeout = timeout

    async def acquire(self, url: str, platform: str) -> Optional[ScrapeResult]:
        log = logger.with_context(url=url, platform=platform)
        try:
            async with asyncio.timeout(self.timeout):
                result = await self.scraper(url, platform)
        except TimeoutError:
            log.warning(f"Scrape timed out after {self.timeout}s for {url}")
            return None
        except Exception as e:
            log.warning(f"Scrape failed for {url}: {str(e)}")
            return None

        if result is None:
            log.info(f"No price found for {url}")
            return None

        if not math.isfinite(result.price) or result.price < 0:
            log.warning(f"Discarding invalid scraped price {result.price} for {url}")
            return None

        log.info(f"Scraped price {result.price} for {url}")
        return result


class PageScraper:
    """Default scraper: GET the page and read the price from its HTML"""

    def __init__(
        self,
        session: ClientSession,
        rate_limiter: Optional[DomainRateLimiter] = None,
        selectors: Optional[dict[str, tuple[str, ...]]] = None,
    ) -> None:
        self.session = session
        self.rate_limiter = rate_limiter or DomainRateLimiter()
        self.selectors = PLATFORM_SELECTORS if selectors is None else selectors

    async def __call__(self, url: str, platform: str) -> Optional[ScrapeResult]:
        domain = registered_domain(url)
        await self.rate_limiter.acquire(domain)

        success = False
        try:
            async with self.session.get(
                url, headers=HEADERS, timeout=ClientTimeout(total=30, sock_connect=15)
            ) as response:
                if not 200 <= response.status < 300:
                    logger.warning(f"HTTP {response.status} while scraping {url}")
                    return None
                html = await response.text()
            success = True
        finally:
            self.rate_limiter.update_rate(domain, success)

        return self.parse_html(html, platform or platform_from_url(url), url)

    def parse_html(self, html: str, platform: str, url: str) -> Optional[ScrapeResult]:
        """Extract a price using the platform's selectors, then generic markup"""
        soup = BeautifulSoup(html, "lxml")
        candidates = self.selectors.get(platform.lower(), ()) + GENERIC_SELECTORS

        for selector in candidates:
            price = self._extract_price(soup.select(selector), url, selector)
            if price is not None:
                return ScrapeResult(price=price, currency=self._currency(soup))

        logger.debug(f"No price markup matched for {url} ({platform})")
        return None

    def _extract_price(self, elements: list[Tag], url: str, selector: str) -> Optional[float]:
        prices = []
        for el in elements:
            raw = el.get("content") or el.get("data-price") or el.get_text(strip=True)
            price = parse_price(raw)
            if price is not None and price > 0:
                prices.append(price)

        if not prices:
            return None

        if len(set(prices)) > 1:
            logger.warning(f"Multiple prices found: {prices} at {url} ({selector})")

        # Lowest wins when the page lists several
        return min(prices)

    @staticmethod
    def _currency(soup: BeautifulSoup) -> Optional[str]:
        for selector in (
            'meta[itemprop="priceCurrency"]',
            'meta[property="product:price:currency"]',
            'meta[property="og:price:currency"]',
        ):
            el = soup.select_one(selector)
            if el is not None and el.get("content"):
                return str(el["content"])
        return None
