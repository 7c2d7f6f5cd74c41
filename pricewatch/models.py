# models.py
from datetime import datetime
from typing import Any, Optional

import tldextract
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# Offline extractor: the bundled public suffix snapshot is enough to label a shop
_extract = tldextract.TLDExtract(suffix_list_urls=())

UNKNOWN_PLATFORM = "unknown"


def platform_from_url(url: str) -> str:
    """Derive a platform label (e.g. ``amazon``) from a product URL"""
    extracted = _extract(url)
    return extracted.domain.lower() or UNKNOWN_PLATFORM


def registered_domain(url: str) -> str:
    extracted = _extract(url)
    if not extracted.suffix:
        return extracted.domain.lower()
    return f"{extracted.domain}.{extracted.suffix}".lower()


class ApiModel(BaseModel):
    """Snake_case attributes, camelCase on the wire"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class PricePoint(ApiModel):
    price: float
    timestamp: datetime


class ProductMetadata(ApiModel):
    views: int = 0


class Product(ApiModel):
    id: int
    user_id: str
    name: str
    url: str
    platform: str
    target_price: Optional[float] = None
    current_price: float = 0
    price_history: list[PricePoint] = Field(default_factory=list)
    metadata: ProductMetadata = Field(default_factory=ProductMetadata)
    created_at: datetime
    updated_at: datetime

    @property
    def is_priced(self) -> bool:
        """False for products whose creation scrape never produced a price"""
        return bool(self.price_history)


class ProductCreate(ApiModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        allow_inf_nan=False,
    )

    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1, max_length=2048)
    platform: Optional[str] = Field(None, max_length=64)
    target_price: Optional[float] = Field(None, ge=0)

    @model_validator(mode="after")
    def infer_platform(self) -> "ProductCreate":
        if self.platform:
            self.platform = self.platform.lower()
        else:
            self.platform = platform_from_url(self.url)
        return self


# Fields a partial update may set but never clear
NON_NULLABLE_UPDATE_FIELDS = ("name", "url", "platform", "current_price")


class ProductUpdate(ApiModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        allow_inf_nan=False,
        extra="forbid",
    )

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    url: Optional[str] = Field(None, min_length=1, max_length=2048)
    platform: Optional[str] = Field(None, min_length=1, max_length=64)
    target_price: Optional[float] = Field(None, ge=0)
    current_price: Optional[float] = Field(None, ge=0)

    @model_validator(mode="after")
    def check_fields(self) -> "ProductUpdate":
        if not self.model_fields_set:
            raise ValueError("No fields to update")
        for field in NON_NULLABLE_UPDATE_FIELDS:
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{to_camel(field)} cannot be null")
        if self.platform:
            self.platform = self.platform.lower()
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class ScrapeResult(BaseModel):
    """What a page scraper hands back for a single URL"""

    price: float
    currency: Optional[str] = None


class Offer(ApiModel):
    title: str = ""
    url: str = ""
    seller: str = ""
    price: Optional[float] = None
    raw: dict[str, Any] = Field(default_factory=dict)


class SponsoredResult(ApiModel):
    items: list[Offer] = Field(default_factory=list)
    lowest_price: Optional[float] = None


class ProductListing(ApiModel):
    products: list[Product]
    cached: bool = False

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "products": [product.to_json_dict() for product in self.products]
        }
        if self.cached:
            body["cached"] = True
        return body


class SearchResult(ApiModel):
    """Tracked products matching a query merged with sponsored offers"""

    products: list[Product] = Field(default_factory=list)
    items: list[Offer] = Field(default_factory=list)
    lowest_price: Optional[float] = None
    sponsored_error: Optional[str] = None

    def to_response(self) -> dict[str, Any]:
        body = self.model_dump(mode="json", by_alias=True)
        if body["sponsoredError"] is None:
            del body["sponsoredError"]
        return body
