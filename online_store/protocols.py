"""
Online Store — サービス間の境界 (Protocol)

エンジンとルーターは具体実装ではなくこれらの契約に依存する。
テストではインメモリの偽物を差し込める。
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from .models import Order, OrderStatus, Product, ProductRequest, Reservation


class CatalogStore(Protocol):
    async def get_product(self, session: AsyncSession, product_id: int) -> Product: ...

    async def list_products(self, session: AsyncSession) -> list[Product]: ...

    async def reserve_stock(
        self, session: AsyncSession, product_id: int, quantity: int
    ) -> Reservation: ...

    async def set_stock(
        self, session: AsyncSession, product_id: int, new_quantity: int
    ) -> Product: ...

    async def create_product(
        self, session: AsyncSession, req: ProductRequest
    ) -> Product: ...

    async def update_product(
        self, session: AsyncSession, product_id: int, req: ProductRequest
    ) -> Product: ...


class OrderLedger(Protocol):
    async def create_order(
        self,
        session: AsyncSession,
        user_id: int,
        product_id: int,
        quantity: int,
        total_cents: int,
    ) -> int: ...

    async def get_order(
        self, session: AsyncSession, order_id: int, user_id: int | None = None
    ) -> Order: ...

    async def list_orders(self, session: AsyncSession, user_id: int) -> list[Order]: ...

    async def update_status(
        self, session: AsyncSession, order_id: int, status: OrderStatus
    ) -> tuple[Order, bool]: ...


class BusTransport(Protocol):
    """メッセージバスへの送信能力だけを表す。"""

    async def publish(self, topic: str, payload: str) -> None: ...


class OrderLifecycle(Protocol):
    """受信イベントルーターが必要とする操作"""

    async def apply_payment_confirmed(self, order_id: int) -> Order | None: ...

    async def apply_inventory_update(
        self, product_id: int, new_stock: int
    ) -> Product | None: ...
