"""
Online Store — カタログストア (Catalog Store)

商品行を排他的に所有する。在庫の引き当て (reserve_stock) は
「読んでから書く」に分解せず、条件付き UPDATE 一文で
チェックと減算を同時に行う。

    UPDATE products
    SET stock_quantity = stock_quantity - :qty
    WHERE id = :id AND stock_quantity >= :qty

行ロック下で WHERE が再評価されるため、最後の 1 個を奪い合う
2 つの注文のうち成功するのは片方だけになる。

すべてのメソッドは呼び出し側のセッション（トランザクション）上で動く。
コミットは呼び出し側の責任。
"""

from sqlalchemy import DateTime, text
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import InsufficientStock, InvalidInput, NotFound
from .models import Product, ProductRequest, Reservation

_COLUMNS = "id, name, description, price_cents, stock_quantity, created_at"


def _product(row) -> Product:
    return Product(
        id=row.id,
        name=row.name,
        description=row.description or "",
        price_cents=row.price_cents,
        stock_quantity=row.stock_quantity,
        created_at=row.created_at,
    )


def validate_product(req: ProductRequest) -> None:
    if not req.name.strip():
        raise InvalidInput("name is required")
    if req.price_cents < 1:
        raise InvalidInput("price_cents must be at least 1")
    if req.stock_quantity < 0:
        raise InvalidInput("stock_quantity must not be negative")


class SqlCatalogStore:
    """products テーブルに対する操作"""

    async def get_product(self, session: AsyncSession, product_id: int) -> Product:
        result = await session.execute(
            text(f"SELECT {_COLUMNS} FROM products WHERE id = :id").columns(
                created_at=DateTime
            ),
            {"id": product_id},
        )
        row = result.fetchone()
        if not row:
            raise NotFound("product not found")
        return _product(row)

    async def list_products(self, session: AsyncSession) -> list[Product]:
        result = await session.execute(
            text(
                f"SELECT {_COLUMNS} FROM products ORDER BY created_at DESC, id DESC"
            ).columns(created_at=DateTime),
        )
        return [_product(row) for row in result.fetchall()]

    async def reserve_stock(
        self,
        session: AsyncSession,
        product_id: int,
        quantity: int,
    ) -> Reservation:
        """
        在庫引き当て。

        在庫チェックと減算を同じ文で行い、引き当て時点の単価と
        引き当て後の在庫を返す。更新行が無ければ、商品が無いのか
        在庫が足りないのかを同じトランザクション内で判別する。
        """
        if quantity < 1:
            raise InvalidInput("quantity must be at least 1")

        result = await session.execute(
            text("""
                UPDATE products
                SET stock_quantity = stock_quantity - :qty
                WHERE id = :id AND stock_quantity >= :qty
                RETURNING id, name, price_cents, stock_quantity
            """),
            {"id": product_id, "qty": quantity},
        )
        row = result.fetchone()
        if row:
            return Reservation(
                product_id=row.id,
                product_name=row.name,
                unit_price_cents=row.price_cents,
                new_stock=row.stock_quantity,
            )

        current = await session.execute(
            text("SELECT stock_quantity FROM products WHERE id = :id"),
            {"id": product_id},
        )
        available = current.scalar_one_or_none()
        if available is None:
            raise NotFound("product not found")
        raise InsufficientStock(product_id, quantity, available)

    async def set_stock(
        self,
        session: AsyncSession,
        product_id: int,
        new_quantity: int,
    ) -> Product:
        """在庫の無条件補正（外部の在庫更新イベント用）"""
        if new_quantity < 0:
            raise InvalidInput("stock must not be negative")

        result = await session.execute(
            text(f"""
                UPDATE products
                SET stock_quantity = :stock
                WHERE id = :id
                RETURNING {_COLUMNS}
            """).columns(created_at=DateTime),
            {"id": product_id, "stock": new_quantity},
        )
        row = result.fetchone()
        if not row:
            raise NotFound("product not found")
        return _product(row)

    async def create_product(
        self, session: AsyncSession, req: ProductRequest
    ) -> Product:
        validate_product(req)
        result = await session.execute(
            text(f"""
                INSERT INTO products (name, description, price_cents, stock_quantity)
                VALUES (:name, :description, :price_cents, :stock_quantity)
                RETURNING {_COLUMNS}
            """).columns(created_at=DateTime),
            {
                "name": req.name,
                "description": req.description,
                "price_cents": req.price_cents,
                "stock_quantity": req.stock_quantity,
            },
        )
        return _product(result.fetchone())

    async def update_product(
        self,
        session: AsyncSession,
        product_id: int,
        req: ProductRequest,
    ) -> Product:
        """
        商品の更新。価格を変えても既存注文の合計金額は変わらない
        （注文は作成時の金額を保持している）。
        """
        validate_product(req)
        result = await session.execute(
            text(f"""
                UPDATE products
                SET name = :name,
                    description = :description,
                    price_cents = :price_cents,
                    stock_quantity = :stock_quantity
                WHERE id = :id
                RETURNING {_COLUMNS}
            """).columns(created_at=DateTime),
            {
                "id": product_id,
                "name": req.name,
                "description": req.description,
                "price_cents": req.price_cents,
                "stock_quantity": req.stock_quantity,
            },
        )
        row = result.fetchone()
        if not row:
            raise NotFound("product not found")
        return _product(row)
