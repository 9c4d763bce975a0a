"""
Order Lifecycle Engine — 注文ライフサイクルエンジン

カタログストアと注文台帳の両方に書き込めるのはこのエンジンだけ。

注文作成フロー:
  ┌─────────────────────────────────────────────────────────┐
  │  1. 数量を検証 (>= 1)                                   │
  │  2. 在庫を引き当て (条件付き UPDATE)                    │
  │  3. 合計金額 = 引き当て時点の単価 × 数量                │
  │  4. 注文を pending で挿入                               │
  │     └─ 2〜4 は 1 トランザクション。途中で失敗したら     │
  │        引き当ても含めてすべてロールバック               │
  │  5. コミット後に order/created を発行                   │
  │     └─ 引き当て後の在庫 < 10 なら inventory/low_stock も │
  └─────────────────────────────────────────────────────────┘

受信イベントによる遷移:
  payment/confirmed → apply_payment_confirmed → pending から paid へ
  inventory/update  → apply_inventory_update  → 在庫補正 (+ low_stock)

イベント発行の失敗はコミット済みの状態を巻き戻さない。
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .catalog import SqlCatalogStore
from .config import LOW_STOCK_THRESHOLD
from .errors import InvalidInput, NotFound, TransientInfra
from .events import LowStockAlert, OrderCreated, OrderStatusChanged
from .ledger import SqlOrderLedger
from .models import Order, OrderStatus, Product
from .protocols import CatalogStore, OrderLedger
from .publisher import EventPublisher

logger = logging.getLogger(__name__)


class OrderLifecycleEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: EventPublisher,
        catalog: CatalogStore | None = None,
        ledger: OrderLedger | None = None,
        low_stock_threshold: int = LOW_STOCK_THRESHOLD,
    ):
        self.session_factory = session_factory
        self.publisher = publisher
        self.catalog = catalog or SqlCatalogStore()
        self.ledger = ledger or SqlOrderLedger()
        self.low_stock_threshold = low_stock_threshold

    # ── 注文作成 ─────────────────────────────────

    async def create_order(self, user_id: int, product_id: int, quantity: int) -> Order:
        """
        注文作成コマンド

        在庫不足・商品なしの場合は副作用もイベントも無しで例外を送出する。
        """
        if quantity < 1:
            raise InvalidInput("quantity must be at least 1")

        async with self.session_factory() as session:
            try:
                async with session.begin():
                    reservation = await self.catalog.reserve_stock(
                        session, product_id, quantity
                    )
                    total_cents = reservation.unit_price_cents * quantity
                    order_id = await self.ledger.create_order(
                        session, user_id, product_id, quantity, total_cents
                    )
                    order = await self.ledger.get_order(session, order_id)
            except SQLAlchemyError as e:
                logger.error("Order creation rolled back: %s", e)
                raise TransientInfra("failed to create order") from e

        logger.info(
            "Order %d created: product=%d quantity=%d total_cents=%d stock_left=%d",
            order.id, product_id, quantity, total_cents, reservation.new_stock,
        )

        # ── コミット後のイベント発行 (失敗しても注文は残る) ──
        await self.publisher.emit(OrderCreated(
            order_id=order.id,
            user_id=user_id,
            product_id=product_id,
            quantity=quantity,
            total_cents=total_cents,
        ))
        if reservation.new_stock < self.low_stock_threshold:
            await self.publisher.emit(LowStockAlert(
                product_id=product_id,
                product_name=reservation.product_name,
                current_stock=reservation.new_stock,
                reorder_level=self.low_stock_threshold,
            ))
        return order

    # ── 参照 (利用者スコープ) ─────────────────────

    async def get_order(self, order_id: int, user_id: int) -> Order:
        async with self.session_factory() as session:
            return await self._read(self.ledger.get_order(session, order_id, user_id))

    async def list_orders(self, user_id: int) -> list[Order]:
        async with self.session_factory() as session:
            return await self._read(self.ledger.list_orders(session, user_id))

    # ── ステータス遷移 ───────────────────────────

    async def apply_status(self, order_id: int, status: OrderStatus) -> Order:
        """
        注文ステータスを前進させる。

        実際に行が変わったときだけ order/status_changed を発行する。
        後退・同一状態は no-op（イベントなし）。
        """
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    order, changed = await self.ledger.update_status(
                        session, order_id, status
                    )
            except SQLAlchemyError as e:
                raise TransientInfra("failed to update order status") from e

        if not changed:
            logger.info(
                "Order %d already %s, %s not applied", order_id, order.status.value, status.value
            )
            return order

        logger.info("Order %d status changed to %s", order_id, status.value)
        await self.publisher.emit(
            OrderStatusChanged(order_id=order_id, status=status.value)
        )
        return order

    async def apply_payment_confirmed(self, order_id: int) -> Order | None:
        """支払い確定。未知の注文はログに残して捨てる。"""
        try:
            return await self.apply_status(order_id, OrderStatus.PAID)
        except NotFound:
            logger.warning("Payment confirmed for unknown order %d, dropped", order_id)
            return None

    # ── 在庫補正 ─────────────────────────────────

    async def apply_inventory_update(self, product_id: int, new_stock: int) -> Product | None:
        """
        外部の在庫更新を反映する。同じ値の再配送は同じ結果になる。
        未知の商品はログに残して捨てる。
        """
        if new_stock < 0:
            raise InvalidInput("stock must not be negative")

        async with self.session_factory() as session:
            try:
                async with session.begin():
                    product = await self.catalog.set_stock(session, product_id, new_stock)
            except NotFound:
                logger.warning("Inventory update for unknown product %d, dropped", product_id)
                return None
            except SQLAlchemyError as e:
                raise TransientInfra("failed to update stock") from e

        logger.info("Stock for product %d set to %d", product_id, new_stock)
        if product.stock_quantity < self.low_stock_threshold:
            await self.publisher.emit(LowStockAlert(
                product_id=product.id,
                product_name=product.name,
                current_stock=product.stock_quantity,
                reorder_level=self.low_stock_threshold,
            ))
        return product

    async def _read(self, coro):
        try:
            return await coro
        except SQLAlchemyError as e:
            raise TransientInfra("store unavailable") from e
