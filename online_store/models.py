"""
Online Store — データモデル

金額はすべて最小通貨単位の整数（セント）で扱う。浮動小数点は使わない。
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class OrderStatus(str, Enum):
    """
    注文ステータス。宣言順がそのまま遷移順になる。

        pending → paid → shipped → delivered

    後戻りはしない。cancelled / refunded は存在しない（既知の欠落）。
    """

    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"

    @property
    def rank(self) -> int:
        return list(OrderStatus).index(self)

    def preceding(self) -> list["OrderStatus"]:
        """この状態へ前進遷移できる状態の一覧"""
        return [s for s in OrderStatus if s.rank < self.rank]


class Product(BaseModel):
    id: int
    name: str
    description: str = ""
    price_cents: int
    stock_quantity: int = Field(ge=0)
    created_at: datetime | None = None


class Order(BaseModel):
    id: int
    user_id: int
    product_id: int
    product_name: str | None = None
    quantity: int = Field(gt=0)
    total_cents: int
    status: OrderStatus
    created_at: datetime | None = None


class User(BaseModel):
    """公開用のユーザー表現。パスワードハッシュは含めない。"""

    id: int
    email: str
    created_at: datetime | None = None


class Reservation(BaseModel):
    """在庫引き当ての結果（引き当て時点の単価と引き当て後の在庫）"""

    model_config = ConfigDict(frozen=True)

    product_id: int
    product_name: str
    unit_price_cents: int
    new_stock: int


# ── Request Models ───────────────────────────────

class ProductRequest(BaseModel):
    name: str
    description: str = ""
    price_cents: int
    stock_quantity: int


class OrderRequest(BaseModel):
    product_id: int
    quantity: int


class Credentials(BaseModel):
    email: str
    password: str
