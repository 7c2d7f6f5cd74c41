# product_cache.py
from typing import Any, Optional

from pydantic import TypeAdapter, ValidationError

from pricewatch.core.cache import CacheBackend
from pricewatch.core.database import ProductStore
from pricewatch.models import PricePoint, Product, ProductCreate, ProductListing
from pricewatch.utils.logging_config import get_logger

logger = get_logger(__name__)

product_list_adapter = TypeAdapter(list[Product])


def cache_key(user_id: str) -> str:
    return f"products:{user_id}"


class ProductCacheGate:
    """Read-through, write-invalidate cache in front of a user's product list.

    Reads are served from the cache when it holds the user's listing and
    repopulate it from the store otherwise. Every mutation goes to the store
    first and then drops the user's cache entry; the cached listing is never
    patched in place. With no cache (``cache is None``) or a failing one, all
    reads hit the store and invalidation is skipped.
    """

    def __init__(
        self,
        store: ProductStore,
        cache: Optional[CacheBackend] = None,
        ttl: int = 300,
        limit: int = 100,
    ) -> None:
        self.store = store
        self.cache = cache
        self.ttl = ttl
        self.limit = limit

    async def list_products(self, user_id: str) -> ProductListing:
        key = cache_key(user_id)

        cached = await self._cache_get(key)
        if cached is not None:
            logger.debug(f"Cache hit for {key}")
            return ProductListing(products=cached, cached=True)

        products = await self.store.list_products(user_id, limit=self.limit)
        await self._cache_set(key, products)
        return ProductListing(products=products, cached=False)

    async def create_product(
        self,
        user_id: str,
        data: ProductCreate,
        current_price: float = 0,
        history: Optional[list[PricePoint]] = None,
    ) -> Product:
        product = await self.store.create_product(
            user_id, data, current_price=current_price, history=history
        )
        await self.invalidate(user_id)
        return product

    async def record_view(self, user_id: str, product_id: int) -> Optional[Product]:
        product = await self.store.record_view(user_id, product_id)
        if product is not None:
            await self.invalidate(user_id)
        return product

    async def update_product(
        self, user_id: str, product_id: int, changes: dict[str, Any]
    ) -> Optional[Product]:
        product = await self.store.update_product(user_id, product_id, changes)
        if product is not None:
            await self.invalidate(user_id)
        return product

    async def delete_product(self, user_id: str, product_id: int) -> bool:
        deleted = await self.store.delete_product(user_id, product_id)
        if deleted:
            await self.invalidate(user_id)
        return deleted

    async def invalidate(self, user_id: str) -> None:
        if self.cache is None:
            return
        key = cache_key(user_id)
        try:
            await self.cache.delete(key)
        except Exception as e:
            logger.warning(f"Cache invalidation failed for {key}: {str(e)}")

    async def _cache_get(self, key: str) -> Optional[list[Product]]:
        if self.cache is None:
            return None
        try:
            payload = await self.cache.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}: {str(e)}")
            return None
        if payload is None:
            return None

        try:
            return product_list_adapter.validate_json(payload)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable cache entry {key}: {str(e)}")
            return None

    async def _cache_set(self, key: str, products: list[Product]) -> None:
        if self.cache is None:
            return
        payload = product_list_adapter.dump_json(products).decode("utf-8")
        try:
            await self.cache.set(key, payload, ttl=self.ttl)
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {str(e)}")
