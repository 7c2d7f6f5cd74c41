# offers.py
"""Price parsing and normalization of third-party shopping results.

Provider payloads differ in which keys they fill, so every normalized
attribute is resolved from an ordered tuple of candidate keys: the first
key holding a value wins.
"""

import math
import re
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Optional, TypeVar

from pricewatch.models import Offer

T = TypeVar("T")

# Digit run with thousands separators and decimals. A minus sign must touch
# the digits; a bare ".5" must not follow a word ("Rs.1,299" is 1299)
number_regex = re.compile(r"-?\d[\d,]*(?:\.\d+)?|(?<![\w.])-?\.\d+")

TITLE_FIELDS = ("title", "product_title", "name")
URL_FIELDS = ("link", "product_link", "offer_link", "source")
SELLER_FIELDS = ("source", "merchant", "store")
PRICE_FIELDS = ("price", "extracted_price")


def _is_absent(value: Any) -> bool:  # noqa: ANN401
    return value is None or (isinstance(value, str) and not value.strip())


def first_present(record: Mapping[str, Any], fields: Iterable[str]) -> Optional[Any]:
    """Return the value of the first candidate key that is set in ``record``"""
    for field in fields:
        value = record.get(field)
        if not _is_absent(value):
            return value
    return None


def parse_price(value: Any) -> Optional[float]:  # noqa: ANN401
    """Turn ``"$1,299.00"``, ``12``, ``"EUR 8.5"`` and friends into a float.

    Returns ``None`` for anything that does not hold a finite number; never
    raises.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None

    try:
        text = str(value)
    except Exception:
        return None

    match = number_regex.search(text)
    if not match:
        return None

    try:
        number = float(match.group().replace(",", ""))
    except ValueError:
        return None

    return number if math.isfinite(number) else None


def resolve_price(record: Mapping[str, Any], fields: Iterable[str] = PRICE_FIELDS) -> Optional[float]:
    """First candidate field that parses to a price"""
    for field in fields:
        value = record.get(field)
        if _is_absent(value):
            continue
        price = parse_price(value)
        if price is not None:
            return price
    return None


def _resolve_text(record: Mapping[str, Any], fields: Iterable[str]) -> str:
    value = first_present(record, fields)
    return "" if value is None else str(value)


def normalize_offer(record: Mapping[str, Any]) -> Offer:
    """Map one raw provider result to the fixed ``Offer`` shape"""
    return Offer(
        title=_resolve_text(record, TITLE_FIELDS),
        url=_resolve_text(record, URL_FIELDS),
        seller=_resolve_text(record, SELLER_FIELDS),
        price=resolve_price(record),
        raw=dict(record),
    )


def _offer_price(item: Any) -> Optional[float]:  # noqa: ANN401
    return getattr(item, "price", None)


def lowest_price(
    items: Iterable[T], key: Callable[[T], Optional[float]] = _offer_price
) -> Optional[float]:
    """Minimum of all non-null prices, ``None`` when there are none"""
    lowest: Optional[float] = None
    for item in items:
        price = key(item)
        if price is None:
            continue
        lowest = price if lowest is None else min(lowest, price)
    return lowest
