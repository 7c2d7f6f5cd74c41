# api.py
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Optional

from aiohttp import ClientSession, web

from pricewatch.config import Settings
from pricewatch.core.cache import AsyncLRUCache, CacheBackend
from pricewatch.core.database import ConnectionPool, ProductStore
from pricewatch.core.product_cache import ProductCacheGate
from pricewatch.core.rate_limiter import DomainRateLimiter
from pricewatch.errors import AuthenticationError, InvalidInputError, PriceWatchError
from pricewatch.features.products import ProductService
from pricewatch.features.scraper import PageScraper, ScrapeGateway, Scraper
from pricewatch.features.sponsored import SponsoredSearchGateway
from pricewatch.utils.logging_config import get_logger

logger = get_logger(__name__)

Authenticator = Callable[[web.Request], Awaitable[Optional[str]]]

PUBLIC_PATHS = frozenset({"/health"})


class TokenAuthenticator:
    """Maps ``Authorization: Bearer <token>`` to a user id"""

    def __init__(self, tokens: dict[str, str]) -> None:
        self.tokens = dict(tokens)

    async def __call__(self, request: web.Request) -> Optional[str]:
        scheme, _, token = request.headers.get("Authorization", "").partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None
        return self.tokens.get(token.strip())


@dataclass
class AppContext:
    settings: Settings
    authenticator: Authenticator
    scraper: Optional[Scraper] = None
    cache: Optional[CacheBackend] = None
    service: Optional[ProductService] = None


CONTEXT_KEY = web.AppKey("context", AppContext)

routes = web.RouteTableDef()


def get_service(request: web.Request) -> ProductService:
    service = request.app[CONTEXT_KEY].service
    if service is None:
        raise RuntimeError("application not started")
    return service


def get_product_id(request: web.Request) -> int:
    return int(request.match_info["product_id"])


async def read_json(request: web.Request) -> Any:  # noqa: ANN401
    try:
        return await request.json()
    except ValueError as e:
        raise InvalidInputError("Request body must be valid JSON") from e


@web.middleware
async def error_middleware(
    request: web.Request, handler: Callable[[web.Request], Awaitable[web.StreamResponse]]
) -> web.StreamResponse:
    """Render domain errors as ``{"message", "error"}`` JSON responses"""
    try:
        return await handler(request)
    except PriceWatchError as e:
        if e.status >= 500:
            logger.error(f"{request.method} {request.path}: {e.message} ({e.detail})")
        return web.json_response(e.to_dict(), status=e.status)
    except web.HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unhandled error on {request.method} {request.path}")
        return web.json_response(
            {"message": "Internal server error", "error": str(e) or type(e).__name__},
            status=500,
        )


@web.middleware
async def auth_middleware(
    request: web.Request, handler: Callable[[web.Request], Awaitable[web.StreamResponse]]
) -> web.StreamResponse:
    if request.path in PUBLIC_PATHS:
        return await handler(request)

    user_id = await request.app[CONTEXT_KEY].authenticator(request)
    if not user_id:
        raise AuthenticationError("Authentication required")

    request["user_id"] = user_id
    logger.with_context(user_id=user_id).debug(f"{request.method} {request.path}")
    return await handler(request)


@routes.get("/health")
async def health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


@routes.get("/api/products")
async def list_products(request: web.Request) -> web.Response:
    listing = await get_service(request).list_products(request["user_id"])
    return web.json_response(listing.to_response())


@routes.post("/api/products")
async def create_product(request: web.Request) -> web.Response:
    payload = await read_json(request)
    product = await get_service(request).create_product(request["user_id"], payload)
    return web.json_response(
        {"message": "Product added successfully", "product": product.to_json_dict()},
        status=201,
    )


@routes.get("/api/products/sponsored")
async def sponsored_search(request: web.Request) -> web.Response:
    result = await get_service(request).sponsored_search(request.query.get("q"))
    return web.json_response(result.to_json_dict())


@routes.get("/api/products/search")
async def search_products(request: web.Request) -> web.Response:
    result = await get_service(request).search(
        request["user_id"], request.query.get("q")
    )
    return web.json_response(result.to_response())


@routes.get(r"/api/products/{product_id:\d+}")
async def get_product(request: web.Request) -> web.Response:
    product = await get_service(request).view_product(
        request["user_id"], get_product_id(request)
    )
    return web.json_response({"product": product.to_json_dict()})


@routes.put(r"/api/products/{product_id:\d+}")
async def update_product(request: web.Request) -> web.Response:
    payload = await read_json(request)
    product = await get_service(request).update_product(
        request["user_id"], get_product_id(request), payload
    )
    return web.json_response(
        {"message": "Product updated successfully", "product": product.to_json_dict()}
    )


@routes.delete(r"/api/products/{product_id:\d+}")
async def delete_product(request: web.Request) -> web.Response:
    await get_service(request).delete_product(request["user_id"], get_product_id(request))
    return web.json_response({"message": "Product deleted successfully"})


async def service_context(app: web.Application) -> AsyncIterator[None]:
    """Open shared clients on startup and close them on shutdown"""
    context = app[CONTEXT_KEY]
    settings = context.settings

    session = ClientSession(trust_env=True)
    store = ProductStore(settings.database_url)
    await store.initialize()

    owned_cache: Optional[AsyncLRUCache] = None
    if context.cache is None and settings.cache_enabled:
        owned_cache = AsyncLRUCache(
            max_size=settings.cache_max_size, ttl=settings.cache_ttl
        )
        context.cache = owned_cache
    if context.cache is None:
        logger.warning("Product cache disabled, every listing reads the database")

    rate_limiter = DomainRateLimiter()
    scraper = context.scraper or PageScraper(session, rate_limiter)

    context.service = ProductService(
        gate=ProductCacheGate(
            store, context.cache, ttl=settings.cache_ttl, limit=settings.list_limit
        ),
        scrape_gateway=ScrapeGateway(scraper, timeout=settings.scrape_timeout),
        sponsored_gateway=SponsoredSearchGateway(
            session,
            settings.serpapi_api_key,
            timeout=settings.search_timeout,
            endpoint=settings.serpapi_endpoint,
            rate_limiter=rate_limiter,
        ),
    )
    if not settings.serpapi_api_key:
        logger.warning("SERPAPI_API_KEY not set, sponsored search will be rejected")
    logger.info(f"Service ready with database {settings.database_url}")

    yield

    await session.close()
    if owned_cache is not None:
        logger.info(f"Product cache stats at shutdown: {owned_cache.get_stats()}")
        await owned_cache.close()
        context.cache = None
    await ConnectionPool.close_all()
    context.service = None


def create_app(
    settings: Settings,
    authenticator: Optional[Authenticator] = None,
    scraper: Optional[Scraper] = None,
    cache: Optional[CacheBackend] = None,
) -> web.Application:
    """Build the web application.

    ``scraper`` and ``cache`` replace the default page scraper and in-process
    cache; ``authenticator`` defaults to bearer tokens from the settings.
    """
    app = web.Application(middlewares=[error_middleware, auth_middleware])
    app[CONTEXT_KEY] = AppContext(
        settings=settings,
        authenticator=authenticator or TokenAuthenticator(settings.api_tokens),
        scraper=scraper,
        cache=cache,
    )
    app.add_routes(routes)
    app.cleanup_ctx.append(service_context)
    return app
