"""
Inbound Event Router — 受信イベントルーター

(トピック, 生ペイロード) を型付きの操作に振り分ける。

  payment/confirmed   → OrderLifecycle.apply_payment_confirmed
  inventory/update    → OrderLifecycle.apply_inventory_update
  inventory/low_stock → ログのみ（自サービスが発行したアラート）

不正なペイロードはログに残して捨てる。未知のトピックは無視する。
どの失敗も呼び出し元（購読ループ）へは伝えない。配送は
at-least-once・順不同なので、各ハンドラは独立かつ冪等に動く。
"""

import logging
from collections.abc import Awaitable, Callable

from pydantic import BaseModel, ValidationError

from .errors import StoreError, TransientInfra
from .events import InventoryUpdate, LowStockAlert, PaymentConfirmed
from .protocols import OrderLifecycle

logger = logging.getLogger(__name__)

Handler = Callable[[BaseModel], Awaitable[object]]


class InboundEventRouter:
    def __init__(self, lifecycle: OrderLifecycle) -> None:
        self.lifecycle = lifecycle
        self.routes: dict[str, tuple[type[BaseModel], Handler]] = {
            "payment/confirmed": (PaymentConfirmed, self._on_payment_confirmed),
            "inventory/update": (InventoryUpdate, self._on_inventory_update),
            LowStockAlert.topic: (LowStockAlert, self._on_low_stock),
        }

    @property
    def topics(self) -> list[str]:
        return list(self.routes)

    async def dispatch(self, topic: str, raw: str | bytes) -> bool:
        """
        1 件のメッセージを処理する。処理できたら True、捨てたら False。
        例外は送出しない。
        """
        route = self.routes.get(topic)
        if route is None:
            logger.debug("Ignoring message on unrouted topic %s", topic)
            return False

        model, handler = route
        try:
            message = model.model_validate_json(raw)
        except (ValidationError, ValueError) as e:
            logger.warning("Discarding malformed %s payload %r: %s", topic, raw, e)
            return False

        try:
            await handler(message)
        except TransientInfra as e:
            logger.error("Failed to apply %s: %s", topic, e)
            return False
        except StoreError as e:
            logger.warning("Failed to apply %s: %s", topic, e)
            return False
        except Exception:
            logger.exception("Unexpected failure handling %s", topic)
            return False
        return True

    # ── ハンドラ ─────────────────────────────────

    async def _on_payment_confirmed(self, msg: PaymentConfirmed) -> None:
        order = await self.lifecycle.apply_payment_confirmed(msg.order_id)
        if order is not None:
            logger.info("Order %d is %s", order.id, order.status.value)

    async def _on_inventory_update(self, msg: InventoryUpdate) -> None:
        await self.lifecycle.apply_inventory_update(msg.product_id, msg.new_stock)

    async def _on_low_stock(self, msg: LowStockAlert) -> None:
        logger.warning(
            "LOW STOCK ALERT: product %s (ID: %d) has only %d items left",
            msg.product_name, msg.product_id, msg.current_stock,
        )

