# products.py
from typing import Any, Optional

from pydantic import ValidationError

from pricewatch.core.database import utcnow
from pricewatch.core.product_cache import ProductCacheGate
from pricewatch.errors import (
    InvalidInputError,
    NotFoundError,
    PriceWatchError,
)
from pricewatch.features.offers import lowest_price
from pricewatch.features.scraper import ScrapeGateway
from pricewatch.features.sponsored import SponsoredSearchGateway
from pricewatch.models import (
    PricePoint,
    Product,
    ProductCreate,
    ProductListing,
    ProductUpdate,
    SearchResult,
    SponsoredResult,
    platform_from_url,
)
from pricewatch.utils.logging_config import get_logger

logger = get_logger(__name__)


def validation_message(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        location = ".".join(str(loc) for loc in err["loc"]) or "body"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


def product_price(product: Product) -> Optional[float]:
    """Current price of a product, None if it was never priced"""
    return product.current_price if product.is_priced else None


def matches_query(product: Product, query: str) -> bool:
    needle = query.lower()
    return any(
        needle in (value or "").lower()
        for value in (product.name, product.platform, product.url)
    )


class ProductService:
    """Product operations for one acting user at a time"""

    def __init__(
        self,
        gate: ProductCacheGate,
        scrape_gateway: ScrapeGateway,
        sponsored_gateway: SponsoredSearchGateway,
    ) -> None:
        self.gate = gate
        self.scrape_gateway = scrape_gateway
        self.sponsored_gateway = sponsored_gateway

    async def list_products(self, user_id: str) -> ProductListing:
        return await self.gate.list_products(user_id)

    async def create_product(self, user_id: str, payload: Any) -> Product:  # noqa: ANN401
        """Validate, scrape the initial price once, then store.

        A failed scrape still creates the product, unpriced: current price 0
        and an empty history.
        """
        try:
            data = ProductCreate.model_validate(payload)
        except ValidationError as e:
            raise InvalidInputError("Invalid product data", validation_message(e)) from e

        platform = data.platform or platform_from_url(data.url)
        scraped = await self.scrape_gateway.acquire(data.url, platform)

        if scraped is None:
            current_price = 0.0
            history: list[PricePoint] = []
        else:
            current_price = scraped.price
            history = [PricePoint(price=scraped.price, timestamp=utcnow())]

        return await self.gate.create_product(
            user_id, data, current_price=current_price, history=history
        )

    async def view_product(self, user_id: str, product_id: int) -> Product:
        product = await self.gate.record_view(user_id, product_id)
        if product is None:
            raise NotFoundError("Product not found")
        return product

    async def update_product(
        self,
        user_id: str,
        product_id: int,
        payload: Any,  # noqa: ANN401
    ) -> Product:
        try:
            changes = ProductUpdate.model_validate(payload).changes()
        except ValidationError as e:
            raise InvalidInputError("Invalid product data", validation_message(e)) from e

        product = await self.gate.update_product(user_id, product_id, changes)
        if product is None:
            raise NotFoundError("Product not found")
        return product

    async def delete_product(self, user_id: str, product_id: int) -> None:
        if not await self.gate.delete_product(user_id, product_id):
            raise NotFoundError("Product not found")

    async def sponsored_search(self, query: Optional[str]) -> SponsoredResult:
        return await self.sponsored_gateway.search(query)

    async def search(self, user_id: str, query: Optional[str]) -> SearchResult:
        """Tracked products matching ``query`` merged with sponsored offers.

        Sponsored failures only empty the offer list; the tracked products
        are still returned.
        """
        q = (query or "").strip()
        listing = await self.gate.list_products(user_id)
        products = [p for p in listing.products if matches_query(p, q)] if q else listing.products

        sponsored = SponsoredResult()
        sponsored_error = None
        if q:
            try:
                sponsored = await self.sponsored_gateway.search(q)
            except PriceWatchError as e:
                logger.warning(f"Sponsored offers unavailable for '{q}': {e.message}")
                sponsored_error = e.message

        lowest = lowest_price(
            [product_price(p) for p in products] + [o.price for o in sponsored.items],
            key=lambda price: price,
        )
        return SearchResult(
            products=products,
            items=sponsored.items,
            lowest_price=lowest,
            sponsored_error=sponsored_error,
        )
