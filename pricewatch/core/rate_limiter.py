# rate_limiter.py
import asyncio
import time
from typing import Optional

from aiolimiter import AsyncLimiter

from pricewatch.utils.logging_config import get_logger

logger = get_logger(__name__)


class DomainRateLimiter:
    """Per-domain limits for outbound calls (product pages, shopping API)"""

    def __init__(
        self,
        default_rate: float = 5,
        default_period: float = 1.0,
        overrides: Optional[dict[str, tuple[float, float]]] = None,
    ) -> None:
        self.default_rate = default_rate
        self.default_period = default_period

        self.limiters: dict[str, AsyncLimiter] = {}
        self.domain_configs: dict[str, tuple[float, float]] = dict(overrides or {})

        self.last_request_time: dict[str, float] = {}
        self.success_counts: dict[str, int] = {}
        self.failure_counts: dict[str, int] = {}

    def get_limiter(self, domain: str) -> AsyncLimiter:
        """Get or create the limiter for a domain"""
        if domain not in self.limiters:
            rate, period = self.domain_configs.get(
                domain, (self.default_rate, self.default_period)
            )
            self.limiters[domain] = AsyncLimiter(rate, period)
            self.success_counts.setdefault(domain, 0)
            self.failure_counts.setdefault(domain, 0)

            logger.debug(f"Created rate limiter for {domain}: {rate} req/{period}s")

        return self.limiters[domain]

    async def acquire(self, domain: str) -> None:
        """Wait until a request to ``domain`` is allowed"""
        limiter = self.get_limiter(domain)

        # Keep at least 100ms between two requests to the same domain
        now = time.time()
        if domain in self.last_request_time:
            time_since_last = now - self.last_request_time[domain]
            if time_since_last < 0.1:
                await asyncio.sleep(0.1 - time_since_last)

        await limiter.acquire()
        self.last_request_time[domain] = time.time()

    def update_rate(self, domain: str, success: bool) -> None:
        """Slow down a domain that keeps failing, speed it back up when healthy"""
        if domain not in self.limiters:
            return

        if success:
            self.success_counts[domain] += 1
        else:
            self.failure_counts[domain] += 1

        total_requests = self.success_counts[domain] + self.failure_counts[domain]
        if total_requests < 10:
            return

        success_rate = self.success_counts[domain] / total_requests
        current_limiter = self.limiters[domain]
        current_rate = current_limiter.max_rate
        current_period = current_limiter.time_period

        if not success or success_rate < 0.7:
            new_rate = round(max(1, current_rate * 0.75), 1)
            if new_rate != current_rate:
                self._replace(domain, new_rate, current_period)
                logger.warning(
                    f"Reducing rate for {domain} to {new_rate} req/{current_period}s"
                )
        elif success_rate > 0.95 and current_rate < self.default_rate:
            new_rate = round(min(self.default_rate, current_rate * 1.1), 1)
            if new_rate != current_rate:
                self._replace(domain, new_rate, current_period)
                logger.info(
                    f"Increasing rate for {domain} to {new_rate} req/{current_period}s"
                )

        # Decay counters so old results stop dominating
        if total_requests >= 50:
            self.success_counts[domain] = int(self.success_counts[domain] * 0.5)
            self.failure_counts[domain] = int(self.failure_counts[domain] * 0.5)

    def _replace(self, domain: str, rate: float, period: float) -> None:
        self.limiters[domain] = AsyncLimiter(rate, period)
        self.domain_configs[domain] = (rate, period)
