import tempfile
from collections.abc import AsyncGenerator, Iterator
from pathlib import Path
from typing import Optional

import pytest
import pytest_asyncio

from pricewatch.core.database import ConnectionPool, ProductStore
from pricewatch.models import ScrapeResult


class FakeScraper:
    """Scraper double returning canned prices per URL"""

    def __init__(
        self,
        prices: Optional[dict[str, float]] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        self.prices = prices or {}
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def __call__(self, url: str, platform: str) -> Optional[ScrapeResult]:
        self.calls.append((url, platform))
        if self.error is not None:
            raise self.error
        price = self.prices.get(url)
        return None if price is None else ScrapeResult(price=price)


@pytest.fixture
def test_db_url() -> Iterator[str]:
    """URL of a throwaway SQLite file"""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as tmp:
        tmp_name = tmp.name

    yield f"sqlite:///{tmp_name}"

    Path(tmp_name).unlink(missing_ok=True)


@pytest_asyncio.fixture
async def store(test_db_url: str) -> AsyncGenerator[ProductStore, None]:
    product_store = ProductStore(database_url=test_db_url)
    await product_store.initialize()
    yield product_store
    await ConnectionPool.close_all()


@pytest.fixture
def fake_scraper() -> FakeScraper:
    return FakeScraper()
