# cache.py
import asyncio
import time
from typing import Any, Optional, Protocol, runtime_checkable

from pricewatch.utils.logging_config import get_logger

logger = get_logger(__name__)


@runtime_checkable
class CacheBackend(Protocol):
    """Key-value store with per-entry expiry used by the product cache gate"""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None: ...

    async def delete(self, key: str) -> None: ...


class AsyncLRUCache:
    """In-process async TTL cache with least-recently-used eviction"""

    def __init__(self, max_size: int = 1000, ttl: int = 300) -> None:
        """
        Args:
            max_size: Maximum number of entries kept before evicting
            ttl: Default time to live for entries in seconds
        """
        self.max_size = max_size
        self.ttl = ttl
        self.cache: dict[str, tuple[Any, float]] = {}
        self.access_times: dict[str, float] = {}
        self.hits = 0
        self.misses = 0
        self._cleanup_task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:  # noqa: ANN401
        """Get an entry, or None when it is missing or expired"""
        if key not in self.cache:
            self.misses += 1
            return None

        value, expiry = self.cache[key]
        current_time = time.time()

        if current_time > expiry:
            async with self._lock:
                # Double-check expiry after acquiring lock
                if key in self.cache and current_time > self.cache[key][1]:
                    self._drop(key)
            self.misses += 1
            return None

        self.access_times[key] = current_time
        self.hits += 1
        return value

    async def set(
        self,
        key: str,
        value: Any,  # noqa: ANN401
        ttl: Optional[int] = None,
    ) -> None:
        """Store an entry that expires after ``ttl`` seconds (default: self.ttl)"""
        current_time = time.time()
        expiry = current_time + (self.ttl if ttl is None else ttl)

        async with self._lock:
            if len(self.cache) >= self.max_size and key not in self.cache:
                self._evict_lru()

            self.cache[key] = (value, expiry)
            self.access_times[key] = current_time

            self._ensure_cleanup_task()

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._drop(key)

    def _drop(self, key: str) -> None:
        self.cache.pop(key, None)
        self.access_times.pop(key, None)

    def _ensure_cleanup_task(self) -> None:
        """Ensure the cleanup task is running"""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            self._cleanup_task.set_name(f"cache-cleanup-{id(self)}")

    def _evict_lru(self) -> None:
        if not self.access_times:
            return

        oldest_key = min(self.access_times.items(), key=lambda x: x[1])[0]
        self._drop(oldest_key)

    async def _cleanup_loop(self) -> None:
        """Background task to clean up expired entries"""
        try:
            while self.cache:
                # every ttl/2 or 60s, whichever is less
                await asyncio.sleep(min(self.ttl / 2, 60))
                await self._cleanup_expired()
        except asyncio.CancelledError:
            logger.debug("Cache cleanup task cancelled")
        except Exception as e:
            logger.error(f"Error in cache cleanup: {str(e)}")

    async def _cleanup_expired(self) -> None:
        current_time = time.time()
        expired_keys = [
            key for key, (_, expiry) in self.cache.items() if current_time > expiry
        ]

        if expired_keys:
            async with self._lock:
                for key in expired_keys:
                    if key in self.cache and current_time > self.cache[key][1]:
                        self._drop(key)
            logger.debug(f"Cleaned up {len(expired_keys)} expired cache entries")

    async def close(self) -> None:
        """Stop the background cleanup task"""
        if self._cleanup_task and not self._cleanup_task.done():
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
        self._cleanup_task = None

    def get_stats(self) -> dict[str, Any]:
        return {
            "size": len(self.cache),
            "max_size": self.max_size,
            "ttl": self.ttl,
            "utilization": len(self.cache) / self.max_size if self.max_size > 0 else 0,
            "hits": self.hits,
            "misses": self.misses,
        }
