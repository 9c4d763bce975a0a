"""
Online Store — データベース接続とスキーマ

SQLAlchemy の非同期エンジンを使う。本番は PostgreSQL (asyncpg)、
ローカル実行とテストは SQLite (aiosqlite)。

在庫が負にならないことはアプリ側の条件付き UPDATE に加えて、
CHECK 制約でも保証する。
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    return create_async_engine(database_url, echo=echo)


def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def _id_column(dialect: str) -> str:
    if dialect == "sqlite":
        return "INTEGER PRIMARY KEY AUTOINCREMENT"
    return "SERIAL PRIMARY KEY"


def schema_statements(dialect: str) -> list[str]:
    id_col = _id_column(dialect)
    return [
        f"""
        CREATE TABLE IF NOT EXISTS users (
            id {id_col},
            email VARCHAR(255) NOT NULL UNIQUE,
            password_hash VARCHAR(255) NOT NULL,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS products (
            id {id_col},
            name VARCHAR(255) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            price_cents INTEGER NOT NULL CHECK (price_cents > 0),
            stock_quantity INTEGER NOT NULL CHECK (stock_quantity >= 0),
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS orders (
            id {id_col},
            user_id INTEGER NOT NULL,
            product_id INTEGER NOT NULL REFERENCES products (id),
            quantity INTEGER NOT NULL CHECK (quantity > 0),
            total_cents INTEGER NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'paid', 'shipped', 'delivered')),
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_orders_user_created
            ON orders (user_id, created_at)
        """,
    ]


async def init_schema(engine: AsyncEngine) -> None:
    """テーブルが無ければ作成する。"""
    async with engine.begin() as conn:
        for stmt in schema_statements(engine.dialect.name):
            await conn.execute(text(stmt))


SAMPLE_PRODUCTS = [
    ("Go Programming Book", "Learn Go programming from scratch", 2999, 50),
    ("MQTT Sensor Kit", "IoT sensor kit with MQTT support", 4999, 25),
    ("Docker T-Shirt", "Comfortable cotton t-shirt with Docker logo", 1999, 100),
    ("Wireless Mouse", "Ergonomic wireless mouse for developers", 3499, 75),
]


async def seed_sample_products(engine: AsyncEngine) -> int:
    """products が空のときだけサンプル商品を投入し、投入件数を返す。"""
    async with engine.begin() as conn:
        count = (await conn.execute(text("SELECT COUNT(*) FROM products"))).scalar_one()
        if count:
            return 0
        await conn.execute(
            text("""
                INSERT INTO products (name, description, price_cents, stock_quantity)
                VALUES (:name, :description, :price_cents, :stock_quantity)
            """),
            [
                {
                    "name": name,
                    "description": description,
                    "price_cents": price_cents,
                    "stock_quantity": stock,
                }
                for name, description, price_cents, stock in SAMPLE_PRODUCTS
            ],
        )
    return len(SAMPLE_PRODUCTS)
