# database.py
import asyncio
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, cast

from databases import Database
from databases.interfaces import Record
from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    select,
)
from sqlalchemy.engine import make_url
from sqlalchemy.schema import CreateIndex, CreateTable

from pricewatch.models import PricePoint, Product, ProductCreate, ProductMetadata
from pricewatch.utils.logging_config import get_logger

logger = get_logger(__name__)

UPDATABLE_COLUMNS = ("name", "url", "platform", "target_price", "current_price")


def utcnow() -> datetime:
    """Naive UTC timestamp, the form SQLite round-trips unchanged"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ConnectionPool:
    """Database connection pool manager"""

    _instances: dict[str, Database] = {}
    _locks: dict[str, asyncio.Lock] = {}

    @classmethod
    async def get_connection(cls, database_url: str) -> Database:
        """Get a database connection from the pool"""
        if database_url not in cls._locks:
            cls._locks[database_url] = asyncio.Lock()

        async with cls._locks[database_url]:
            if database_url not in cls._instances:
                db = Database(database_url)
                await db.connect()
                cls._instances[database_url] = db
                logger.info(f"Created new database connection for {database_url}")

            return cls._instances[database_url]

    @classmethod
    async def close_all(cls) -> None:
        """Close all database connections"""
        for url, db in cls._instances.items():
            logger.info(f"Closing database connection for {url}")
            await db.disconnect()

        cls._instances.clear()
        cls._locks.clear()


class ProductStore:
    """Authoritative storage for tracked products and their price history.

    Every read and write takes the acting user's id and filters on it in
    SQL, so one user can never see or touch another user's products.
    """

    def __init__(self, database_url: str = "sqlite:///data/pricewatch.db") -> None:
        self.metadata = MetaData()
        self.database_url = database_url
        self.products = self._define_products_table()
        self.price_history = self._define_price_history_table()

    def _define_products_table(self) -> Table:
        return Table(
            "products",
            self.metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("user_id", String(64), nullable=False),
            Column("name", String(255), nullable=False),
            Column("url", String(2048), nullable=False),
            Column("platform", String(64), nullable=False),
            Column("target_price", Float),
            Column("current_price", Float, nullable=False, default=0),
            Column("views", Integer, nullable=False, default=0),
            Column("created_at", DateTime, nullable=False),
            Column("updated_at", DateTime, nullable=False),
            Index("idx_products_user_created", "user_id", "created_at"),
        )

    def _define_price_history_table(self) -> Table:
        return Table(
            "price_history",
            self.metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column(
                "product_id",
                Integer,
                ForeignKey("products.id", ondelete="CASCADE"),
                nullable=False,
            ),
            Column("price", Float, nullable=False),
            Column("timestamp", DateTime, nullable=False),
            Index("idx_history_product", "product_id", "id"),
        )

    async def initialize(self) -> None:
        """Connect and create tables and indexes if they don't exist"""
        self._ensure_sqlite_directory()
        self.db = await ConnectionPool.get_connection(self.database_url)

        for table in (self.products, self.price_history):
            await self.db.execute(CreateTable(table, if_not_exists=True))
            for index in table.indexes:
                await self.db.execute(CreateIndex(index, if_not_exists=True))

    def _ensure_sqlite_directory(self) -> None:
        url = make_url(self.database_url)
        if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    async def list_products(self, user_id: str, limit: int = 100) -> list[Product]:
        """Newest first, capped at ``limit`` records"""
        query = (
            self.products.select()
            .where(self.products.c.user_id == user_id)
            .order_by(self.products.c.created_at.desc(), self.products.c.id.desc())
            .limit(limit)
        )
        rows = await self.db.fetch_all(query)
        histories = await self._fetch_histories([row["id"] for row in rows])
        return [self._to_product(row, histories[row["id"]]) for row in rows]

    async def get_product(self, user_id: str, product_id: int) -> Optional[Product]:
        row = await self._fetch_row(user_id, product_id)
        if row is None:
            return None
        histories = await self._fetch_histories([product_id])
        return self._to_product(row, histories[product_id])

    async def create_product(
        self,
        user_id: str,
        data: ProductCreate,
        current_price: float = 0,
        history: Optional[list[PricePoint]] = None,
    ) -> Product:
        """Insert a product together with its initial price history"""
        now = utcnow()
        async with self.db.transaction():
            product_id = await self.db.execute(
                self.products.insert().values(
                    user_id=user_id,
                    name=data.name,
                    url=data.url,
                    platform=data.platform,
                    target_price=data.target_price,
                    current_price=current_price,
                    views=0,
                    created_at=now,
                    updated_at=now,
                )
            )
            for point in history or []:
                await self._insert_price_point(product_id, point)

        logger.info(f"Created product {product_id} for user {user_id}")
        return cast(Product, await self.get_product(user_id, product_id))

    async def record_view(self, user_id: str, product_id: int) -> Optional[Product]:
        """Increment the view counter; None if the product is not the user's"""
        async with self.db.transaction():
            row = await self._fetch_row(user_id, product_id)
            if row is None:
                return None
            await self.db.execute(
                self.products.update()
                .where(
                    (self.products.c.id == product_id)
                    & (self.products.c.user_id == user_id)
                )
                .values(views=self.products.c.views + 1)
            )

        return await self.get_product(user_id, product_id)

    async def update_product(
        self, user_id: str, product_id: int, changes: dict[str, Any]
    ) -> Optional[Product]:
        """Merge ``changes`` into the product.

        A new ``current_price`` is also appended to the price history so the
        last history entry always matches the current price.
        """
        values = {k: v for k, v in changes.items() if k in UPDATABLE_COLUMNS}

        async with self.db.transaction():
            row = await self._fetch_row(user_id, product_id)
            if row is None:
                return None

            now = utcnow()
            if "current_price" in values:
                last_price = await self._last_price(product_id)
                if last_price is None or last_price != values["current_price"]:
                    await self._insert_price_point(
                        product_id,
                        PricePoint(price=values["current_price"], timestamp=now),
                    )

            await self.db.execute(
                self.products.update()
                .where(
                    (self.products.c.id == product_id)
                    & (self.products.c.user_id == user_id)
                )
                .values(**values, updated_at=now)
            )

        logger.info(f"Updated product {product_id}: {sorted(values)}")
        return await self.get_product(user_id, product_id)

    async def delete_product(self, user_id: str, product_id: int) -> bool:
        async with self.db.transaction():
            row = await self._fetch_row(user_id, product_id)
            if row is None:
                return False
            await self.db.execute(
                self.price_history.delete().where(
                    self.price_history.c.product_id == product_id
                )
            )
            await self.db.execute(
                self.products.delete().where(
                    (self.products.c.id == product_id)
                    & (self.products.c.user_id == user_id)
                )
            )

        logger.info(f"Deleted product {product_id} for user {user_id}")
        return True

    async def _fetch_row(self, user_id: str, product_id: int) -> Optional[Record]:
        query = self.products.select().where(
            (self.products.c.id == product_id) & (self.products.c.user_id == user_id)
        )
        return await self.db.fetch_one(query)

    async def _fetch_histories(
        self, product_ids: list[int]
    ) -> defaultdict[int, list[PricePoint]]:
        histories: defaultdict[int, list[PricePoint]] = defaultdict(list)
        if not product_ids:
            return histories

        query = (
            select(
                self.price_history.c.product_id,
                self.price_history.c.price,
                self.price_history.c.timestamp,
            )
            .where(self.price_history.c.product_id.in_(product_ids))
            .order_by(self.price_history.c.id)
        )
        for row in await self.db.fetch_all(query):
            histories[row["product_id"]].append(
                PricePoint(price=row["price"], timestamp=row["timestamp"])
            )
        return histories

    async def _last_price(self, product_id: int) -> Optional[float]:
        query = (
            select(self.price_history.c.price)
            .where(self.price_history.c.product_id == product_id)
            .order_by(self.price_history.c.id.desc())
            .limit(1)
        )
        row = await self.db.fetch_one(query)
        return row["price"] if row else None

    async def _insert_price_point(self, product_id: int, point: PricePoint) -> None:
        await self.db.execute(
            self.price_history.insert().values(
                product_id=product_id, price=point.price, timestamp=point.timestamp
            )
        )

    @staticmethod
    def _to_product(row: Record, history: list[PricePoint]) -> Product:
        return Product(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            url=row["url"],
            platform=row["platform"],
            target_price=row["target_price"],
            current_price=row["current_price"],
            price_history=history,
            metadata=ProductMetadata(views=row["views"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
