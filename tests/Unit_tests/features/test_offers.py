import math

import pytest

from pricewatch.features.offers import (
    first_present,
    lowest_price,
    normalize_offer,
    parse_price,
)
from pricewatch.models import Offer


class TestParsePrice:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("$12.50", 12.5),
            ("$1,299.00", 1299.0),
            ("EUR 8", 8.0),
            ("Now only 45.99!", 45.99),
            ("-3.5", -3.5),
            ("USD -3.5", -3.5),
            ("10.00 - 20.00", 10.0),
            (8, 8.0),
            (19.99, 19.99),
            ("0", 0.0),
            ("Rs. 499", 499.0),
            ("Rs.1,299", 1299.0),
            ("Approx. $20", 20.0),
            ("Price - 5", 5.0),
            ("INR 2,49,999.00", 249999.0),
            (".75", 0.75),
        ],
    )
    def test_parses_numeric_run(self, value: object, expected: float) -> None:
        assert parse_price(value) == expected

    @pytest.mark.parametrize(
        "value",
        [None, "", "free", "$", "-", ".", "N/A", float("nan"), float("inf"), True, [], {}],
    )
    def test_no_value(self, value: object) -> None:
        assert parse_price(value) is None

    def test_never_raises_for_odd_objects(self) -> None:
        class Weird:
            def __str__(self) -> str:
                raise RuntimeError("boom")

        assert parse_price(Weird()) is None

    def test_result_is_finite(self) -> None:
        price = parse_price("9" * 400)
        assert price is None or math.isfinite(price)


class TestFirstPresent:
    def test_priority_order(self) -> None:
        record = {"title": "A", "product_title": "B"}
        assert first_present(record, ("title", "product_title")) == "A"

    def test_skips_missing_and_blank(self) -> None:
        record = {"title": None, "product_title": "  ", "name": "C"}
        assert first_present(record, ("title", "product_title", "name")) == "C"

    def test_nothing_present(self) -> None:
        assert first_present({}, ("title",)) is None


class TestNormalizeOffer:
    def test_title_priority(self) -> None:
        offer = normalize_offer({"title": "A", "product_title": "B"})
        assert offer.title == "A"

    def test_fallback_fields(self) -> None:
        raw = {
            "name": "Kettle",
            "product_link": "https://shop.example/kettle",
            "merchant": "Example Shop",
            "extracted_price": 8,
        }

        offer = normalize_offer(raw)

        assert offer == Offer(
            title="Kettle",
            url="https://shop.example/kettle",
            seller="Example Shop",
            price=8.0,
            raw=raw,
        )

    def test_source_doubles_as_url_and_seller(self) -> None:
        offer = normalize_offer({"source": "Walmart"})
        assert offer.url == "Walmart"
        assert offer.seller == "Walmart"

    def test_link_wins_over_source_for_url(self) -> None:
        offer = normalize_offer({"link": "https://a.example", "source": "Shop"})
        assert offer.url == "https://a.example"
        assert offer.seller == "Shop"

    def test_price_prefers_price_field(self) -> None:
        offer = normalize_offer({"price": "$12.50", "extracted_price": 12.49})
        assert offer.price == 12.5

    def test_unparseable_price_falls_back_to_extracted(self) -> None:
        offer = normalize_offer({"price": "See website", "extracted_price": 7.25})
        assert offer.price == 7.25

    def test_empty_record(self) -> None:
        offer = normalize_offer({})
        assert (offer.title, offer.url, offer.seller, offer.price) == ("", "", "", None)
        assert offer.raw == {}

    def test_malformed_url_passes_through(self) -> None:
        offer = normalize_offer({"link": "not a url"})
        assert offer.url == "not a url"

    def test_raw_is_kept(self) -> None:
        raw = {"title": "A", "thumbnail": "https://img.example/a.jpg", "rating": 4.5}
        assert normalize_offer(raw).raw == raw


class TestLowestPrice:
    def test_empty(self) -> None:
        assert lowest_price([]) is None

    def test_all_null(self) -> None:
        assert lowest_price([Offer(), Offer(price=None)]) is None

    def test_mixed(self) -> None:
        offers = [Offer(price=12.5), Offer(), Offer(price=8.0), Offer(price=30)]
        assert lowest_price(offers) == 8.0

    def test_order_independent(self) -> None:
        prices = [3.0, None, 1.5, 2.0]
        assert lowest_price(prices, key=lambda p: p) == 1.5
        assert lowest_price(list(reversed(prices)), key=lambda p: p) == 1.5

    def test_zero_is_a_price(self) -> None:
        assert lowest_price([Offer(price=4), Offer(price=0)]) == 0
