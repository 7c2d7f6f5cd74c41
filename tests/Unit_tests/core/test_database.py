from datetime import datetime

import pytest

from pricewatch.core.database import ProductStore
from pricewatch.models import PricePoint, ProductCreate


def new_product(name: str = "Headphones", url: str = "https://www.amazon.com/dp/B01") -> ProductCreate:
    return ProductCreate(name=name, url=url, target_price=50)


@pytest.mark.asyncio
async def test_initialize_creates_tables(store: ProductStore) -> None:
    """Test that initialization creates the required tables"""
    query = "SELECT name FROM sqlite_master WHERE type='table'"
    tables = [row[0] for row in await store.db.fetch_all(query)]

    assert "products" in tables
    assert "price_history" in tables


@pytest.mark.asyncio
async def test_initialize_is_idempotent(store: ProductStore) -> None:
    await store.initialize()
    assert await store.list_products("alice") == []


@pytest.mark.asyncio
async def test_create_product_with_history(store: ProductStore) -> None:
    point = PricePoint(price=19.99, timestamp=datetime(2026, 1, 1, 12, 0))
    product = await store.create_product(
        "alice", new_product(), current_price=19.99, history=[point]
    )

    assert product.id > 0
    assert product.user_id == "alice"
    assert product.platform == "amazon"
    assert product.target_price == 50
    assert product.current_price == 19.99
    assert product.price_history == [point]
    assert product.metadata.views == 0


@pytest.mark.asyncio
async def test_create_product_without_history(store: ProductStore) -> None:
    product = await store.create_product("alice", new_product())

    assert product.current_price == 0
    assert product.price_history == []
    assert not product.is_priced


@pytest.mark.asyncio
async def test_list_products_is_user_scoped_and_newest_first(store: ProductStore) -> None:
    first = await store.create_product("alice", new_product("First"))
    second = await store.create_product("alice", new_product("Second"))
    await store.create_product("bob", new_product("Bob's"))

    products = await store.list_products("alice")

    assert [p.id for p in products] == [second.id, first.id]
    assert all(p.user_id == "alice" for p in products)


@pytest.mark.asyncio
async def test_list_products_respects_limit(store: ProductStore) -> None:
    for i in range(5):
        await store.create_product("alice", new_product(f"Item {i}"))

    products = await store.list_products("alice", limit=3)

    assert [p.name for p in products] == ["Item 4", "Item 3", "Item 2"]


@pytest.mark.asyncio
async def test_get_product_other_user_is_none(store: ProductStore) -> None:
    product = await store.create_product("alice", new_product())

    assert await store.get_product("alice", product.id) is not None
    assert await store.get_product("bob", product.id) is None


@pytest.mark.asyncio
async def test_record_view_increments_counter(store: ProductStore) -> None:
    product = await store.create_product("alice", new_product())

    await store.record_view("alice", product.id)
    viewed = await store.record_view("alice", product.id)

    assert viewed is not None
    assert viewed.metadata.views == 2
    assert await store.record_view("bob", product.id) is None


class TestUpdateProduct:
    @pytest.mark.asyncio
    async def test_partial_update(self, store: ProductStore) -> None:
        product = await store.create_product("alice", new_product())

        updated = await store.update_product(
            "alice", product.id, {"name": "Renamed", "target_price": 30}
        )

        assert updated is not None
        assert updated.name == "Renamed"
        assert updated.target_price == 30
        assert updated.url == product.url
        assert updated.updated_at >= product.updated_at

    @pytest.mark.asyncio
    async def test_current_price_appends_history(self, store: ProductStore) -> None:
        point = PricePoint(price=20.0, timestamp=datetime(2026, 1, 1))
        product = await store.create_product(
            "alice", new_product(), current_price=20.0, history=[point]
        )

        updated = await store.update_product("alice", product.id, {"current_price": 17.5})

        assert updated is not None
        assert updated.current_price == 17.5
        assert [p.price for p in updated.price_history] == [20.0, 17.5]

    @pytest.mark.asyncio
    async def test_unchanged_current_price_keeps_history(self, store: ProductStore) -> None:
        point = PricePoint(price=20.0, timestamp=datetime(2026, 1, 1))
        product = await store.create_product(
            "alice", new_product(), current_price=20.0, history=[point]
        )

        updated = await store.update_product("alice", product.id, {"current_price": 20.0})

        assert updated is not None
        assert len(updated.price_history) == 1

    @pytest.mark.asyncio
    async def test_ignores_unknown_columns(self, store: ProductStore) -> None:
        product = await store.create_product("alice", new_product())

        updated = await store.update_product(
            "alice", product.id, {"user_id": "mallory", "name": "Still mine"}
        )

        assert updated is not None
        assert updated.user_id == "alice"
        assert await store.get_product("mallory", product.id) is None

    @pytest.mark.asyncio
    async def test_other_user_cannot_update(self, store: ProductStore) -> None:
        product = await store.create_product("alice", new_product())

        assert await store.update_product("bob", product.id, {"name": "Hijacked"}) is None

        unchanged = await store.get_product("alice", product.id)
        assert unchanged is not None
        assert unchanged.name == "Headphones"


@pytest.mark.asyncio
async def test_delete_product(store: ProductStore) -> None:
    point = PricePoint(price=20.0, timestamp=datetime(2026, 1, 1))
    product = await store.create_product(
        "alice", new_product(), current_price=20.0, history=[point]
    )

    assert await store.delete_product("bob", product.id) is False
    assert await store.delete_product("alice", product.id) is True
    assert await store.get_product("alice", product.id) is None
    assert await store.delete_product("alice", product.id) is False

    rows = await store.db.fetch_all(store.price_history.select())
    assert rows == []
