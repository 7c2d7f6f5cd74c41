# config.py
import os
from typing import Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_DATABASE_URL = "sqlite:///data/pricewatch.db"
SERPAPI_ENDPOINT = "https://serpapi.com/search.json"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_api_tokens(raw: Optional[str]) -> dict[str, str]:
    """Parse ``token:user,token:user`` into a token -> user id mapping"""
    tokens: dict[str, str] = {}
    if not raw:
        return tokens
    for pair in raw.split(","):
        token, sep, user_id = pair.strip().partition(":")
        if sep and token and user_id:
            tokens[token.strip()] = user_id.strip()
    return tokens


class Settings(BaseModel):
    database_url: str = DEFAULT_DATABASE_URL
    serpapi_api_key: Optional[str] = None
    serpapi_endpoint: str = SERPAPI_ENDPOINT

    cache_enabled: bool = True
    cache_ttl: int = Field(300, gt=0)
    cache_max_size: int = Field(1000, gt=0)
    list_limit: int = Field(100, gt=0)

    scrape_timeout: float = Field(15.0, gt=0)
    search_timeout: float = Field(10.0, gt=0)

    api_tokens: dict[str, str] = Field(default_factory=dict)

    host: str = "0.0.0.0"
    port: int = 8080
    log_dir: str = "logs"

    @field_validator("serpapi_api_key")
    @classmethod
    def blank_key_is_missing(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables (call ``load_dotenv`` first)"""
        return cls(
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            serpapi_api_key=os.getenv("SERPAPI_API_KEY"),
            serpapi_endpoint=os.getenv("SERPAPI_ENDPOINT", SERPAPI_ENDPOINT),
            cache_enabled=_env_bool("PRICEWATCH_CACHE_ENABLED", True),
            cache_ttl=int(os.getenv("PRICEWATCH_CACHE_TTL", "300")),
            cache_max_size=int(os.getenv("PRICEWATCH_CACHE_MAX_SIZE", "1000")),
            scrape_timeout=float(os.getenv("PRICEWATCH_SCRAPE_TIMEOUT", "15")),
            search_timeout=float(os.getenv("PRICEWATCH_SEARCH_TIMEOUT", "10")),
            api_tokens=parse_api_tokens(os.getenv("PRICEWATCH_API_TOKENS")),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8080")),
            log_dir=os.getenv("PRICEWATCH_LOG_DIR", "logs"),
        )
