"""
Order Ledger — 注文台帳

注文行を排他的に所有する。ステータス更新は前進方向のみ許可し、
行単位の条件付き UPDATE を同一注文に対する操作の直列化点とする。

    UPDATE orders SET status = :status
    WHERE id = :id AND status IN (:status より前の状態)

後退や同じ状態への遷移は更新行 0 件になり、エラーにせず
「変更なし」として現在の注文を返す（決定的な no-op）。
同じ payment/confirmed が二度届いても二重には適用されない。
"""

from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import NotFound
from .models import Order, OrderStatus

_SELECT = """
    SELECT o.id, o.user_id, o.product_id, p.name AS product_name,
           o.quantity, o.total_cents, o.status, o.created_at
    FROM orders o
    LEFT JOIN products p ON o.product_id = p.id
"""


def _order(row) -> Order:
    return Order(
        id=row.id,
        user_id=row.user_id,
        product_id=row.product_id,
        product_name=row.product_name,
        quantity=row.quantity,
        total_cents=row.total_cents,
        status=OrderStatus(row.status),
        created_at=row.created_at,
    )


class SqlOrderLedger:
    """orders テーブルに対する操作"""

    async def create_order(
        self,
        session: AsyncSession,
        user_id: int,
        product_id: int,
        quantity: int,
        total_cents: int,
    ) -> int:
        """注文を pending で挿入し、採番された ID を返す。在庫の引き当ては呼び出し側の責任。"""
        result = await session.execute(
            text("""
                INSERT INTO orders (user_id, product_id, quantity, total_cents, status)
                VALUES (:user_id, :product_id, :quantity, :total_cents, :status)
                RETURNING id
            """),
            {
                "user_id": user_id,
                "product_id": product_id,
                "quantity": quantity,
                "total_cents": total_cents,
                "status": OrderStatus.PENDING.value,
            },
        )
        return result.scalar_one()

    async def get_order(
        self,
        session: AsyncSession,
        order_id: int,
        user_id: int | None = None,
    ) -> Order:
        """
        注文を取得する。user_id を渡すとその利用者の注文に限定する。
        他人の注文は存在しない注文と区別できない。
        """
        sql = _SELECT + " WHERE o.id = :id"
        params: dict = {"id": order_id}
        if user_id is not None:
            sql += " AND o.user_id = :user_id"
            params["user_id"] = user_id

        result = await session.execute(
            text(sql).columns(created_at=DateTime), params
        )
        row = result.fetchone()
        if not row:
            raise NotFound("order not found")
        return _order(row)

    async def list_orders(self, session: AsyncSession, user_id: int) -> list[Order]:
        """利用者の注文を新しい順に返す。"""
        result = await session.execute(
            text(
                _SELECT
                + " WHERE o.user_id = :user_id ORDER BY o.created_at DESC, o.id DESC"
            ).columns(created_at=DateTime),
            {"user_id": user_id},
        )
        return [_order(row) for row in result.fetchall()]

    async def update_status(
        self,
        session: AsyncSession,
        order_id: int,
        status: OrderStatus,
    ) -> tuple[Order, bool]:
        """
        ステータスを前進させる。

        戻り値は (現在の注文, 実際に更新したか)。
        注文が無ければ NotFound。
        """
        prior = [s.value for s in status.preceding()]
        changed = False
        if prior:
            result = await session.execute(
                text("""
                    UPDATE orders SET status = :status
                    WHERE id = :id AND status IN :prior
                    RETURNING id
                """).bindparams(bindparam("prior", expanding=True)),
                {"id": order_id, "status": status.value, "prior": prior},
            )
            changed = result.fetchone() is not None

        order = await self.get_order(session, order_id)
        return order, changed
