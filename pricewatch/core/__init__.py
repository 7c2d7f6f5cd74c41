# Re-export core modules
from .cache import AsyncLRUCache, CacheBackend
from .database import ConnectionPool, ProductStore
from .product_cache import ProductCacheGate
from .rate_limiter import DomainRateLimiter

__all__ = [
    "AsyncLRUCache",
    "CacheBackend",
    "ConnectionPool",
    "DomainRateLimiter",
    "ProductCacheGate",
    "ProductStore",
]
