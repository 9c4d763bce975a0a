"""
Online Store — ドメインイベント定義

イベントはコミット済みの事実を表す。過去形で命名し、不変 (frozen) として扱う。
このサービスはイベントを永続化しない。発行したら誰も所有しない
（fire-and-forget）。各クラスは自分のトピックを知っている。
"""

import time
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field

from .config import LOW_STOCK_THRESHOLD


def _now() -> int:
    """Unix 秒。既存の購読側と同じ形式。"""
    return int(time.time())


class DomainEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    topic: ClassVar[str]
    timestamp: int = Field(default_factory=_now)


class UserRegistered(DomainEvent):
    """ユーザーが登録された"""
    topic: ClassVar[str] = "user/registered"
    user_id: int
    email: str


class UserLoggedIn(DomainEvent):
    """ユーザーがログインした"""
    topic: ClassVar[str] = "user/login"
    user_id: int
    email: str


class OrderCreated(DomainEvent):
    """注文が作成された（在庫引き当てと同一トランザクションでコミット済み）"""
    topic: ClassVar[str] = "order/created"
    order_id: int
    user_id: int
    product_id: int
    quantity: int
    total_cents: int


class OrderStatusChanged(DomainEvent):
    """注文ステータスが前進した"""
    topic: ClassVar[str] = "order/status_changed"
    order_id: int
    status: str


class ProductCreated(DomainEvent):
    topic: ClassVar[str] = "product/created"
    product_id: int
    name: str


class ProductUpdated(DomainEvent):
    topic: ClassVar[str] = "product/updated"
    product_id: int
    name: str


class LowStockAlert(DomainEvent):
    """在庫がしきい値を下回った"""
    topic: ClassVar[str] = "inventory/low_stock"
    product_id: int
    product_name: str
    current_stock: int
    reorder_level: int = LOW_STOCK_THRESHOLD


# ── 受信イベント (外部サービスから届く) ──────────

class PaymentConfirmed(BaseModel):
    """payment/confirmed のペイロード。status は参照しない。"""
    order_id: int
    status: str | None = None


class InventoryUpdate(BaseModel):
    """inventory/update のペイロード"""
    product_id: int
    new_stock: int = Field(ge=0)
