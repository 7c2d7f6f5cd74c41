# sponsored.py
import asyncio
from typing import Any, Optional

from aiohttp import ClientError, ClientSession, ClientTimeout

from pricewatch.config import SERPAPI_ENDPOINT
from pricewatch.core.rate_limiter import DomainRateLimiter
from pricewatch.errors import ConfigurationError, InvalidInputError, UpstreamFetchError
from pricewatch.features.offers import lowest_price, normalize_offer
from pricewatch.models import SponsoredResult, registered_domain
from pricewatch.utils.logging_config import get_logger

logger = get_logger(__name__)

RESULTS_FIELD = "shopping_results"


class SponsoredSearchGateway:
    """Server-side proxy to the Google Shopping engine of SerpAPI"""

    def __init__(
        self,
        session: ClientSession,
        api_key: Optional[str],
        timeout: float = 10.0,
        endpoint: str = SERPAPI_ENDPOINT,
        rate_limiter: Optional[DomainRateLimiter] = None,
    ) -> None:
        self.session = session
        self.api_key = api_key
        self.timeout = ClientTimeout(total=timeout)
        self.endpoint = endpoint
        self.rate_limiter = rate_limiter or DomainRateLimiter()

    async def search(self, query: Optional[str]) -> SponsoredResult:
        """Fetch, normalize and reduce sponsored offers for ``query``.

        Raises:
            InvalidInputError: query is empty; nothing is sent upstream
            ConfigurationError: no SerpAPI key is configured
            UpstreamFetchError: the call failed, timed out or returned non-2xx
        """
        q = (query or "").strip()
        if not q:
            raise InvalidInputError("Missing query parameter `q`")

        if not self.api_key:
            raise ConfigurationError("SERPAPI_API_KEY not configured on server")

        payload = await self._fetch(q)
        results = payload.get(RESULTS_FIELD) if isinstance(payload, dict) else None
        if not isinstance(results, list):
            results = []

        items = [normalize_offer(r) for r in results if isinstance(r, dict)]
        lowest = lowest_price(items)
        logger.info(f"Sponsored search '{q}': {len(items)} offers, lowest {lowest}")
        return SponsoredResult(items=items, lowest_price=lowest)

    async def _fetch(self, query: str) -> Any:  # noqa: ANN401
        params = {"engine": "google_shopping", "q": query, "api_key": self.api_key}
        domain = registered_domain(self.endpoint)

        sent = success = False
        try:
            # Queueing behind the rate limiter counts against the same timeout
            async with asyncio.timeout(self.timeout.total):
                await self.rate_limiter.acquire(domain)
                sent = True
                async with self.session.get(
                    self.endpoint, params=params, timeout=self.timeout
                ) as response:
                    if not 200 <= response.status < 300:
                        detail = await self._error_detail(response)
                        raise UpstreamFetchError(
                            "Error fetching sponsored results",
                            f"HTTP {response.status}: {detail}",
                        )
                    payload = await response.json()
            success = True
            return payload
        except (asyncio.TimeoutError, TimeoutError) as e:
            logger.error(f"Sponsored search timed out for '{query}'")
            raise UpstreamFetchError(
                "Error fetching sponsored results", "Upstream request timed out"
            ) from e
        except (ClientError, ValueError) as e:
            logger.error(f"Sponsored search error: {str(e)}")
            raise UpstreamFetchError(
                "Error fetching sponsored results", str(e) or type(e).__name__
            ) from e
        finally:
            if sent:
                self.rate_limiter.update_rate(domain, success)

    @staticmethod
    async def _error_detail(response: Any) -> str:  # noqa: ANN401
        try:
            body = await response.json(content_type=None)
        except Exception:
            return (await response.text())[:200]
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return str(body)[:200]
