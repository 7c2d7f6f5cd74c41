"""
pricewatch - Track product prices and compare them with sponsored offers
"""

from .core.cache import AsyncLRUCache
from .core.database import ProductStore
from .core.product_cache import ProductCacheGate
from .features.offers import lowest_price, normalize_offer, parse_price
from .utils.logging_config import get_logger

__all__ = [
    "AsyncLRUCache",
    "ProductCacheGate",
    "ProductStore",
    "get_logger",
    "lowest_price",
    "normalize_offer",
    "parse_price",
]
