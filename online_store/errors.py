"""
Online Store — エラー分類

NotFound / InsufficientStock / InvalidInput は想定内の業務結果で、
ゲートウェイが 4xx に変換する。TransientInfra はストアやバスの一時障害。
"""


class StoreError(Exception):
    """ドメインエラーの基底クラス"""


class NotFound(StoreError):
    """参照先（商品・注文・ユーザー）が存在しない。

    他人の注文も「存在しない」と同じ扱いにする。
    """


class InsufficientStock(StoreError):
    def __init__(self, product_id: int, requested: int, available: int) -> None:
        super().__init__(
            f"insufficient stock: only {available} items available"
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class InvalidInput(StoreError):
    """数量が正でない、ペイロードが不正など"""


class TransientInfra(StoreError):
    """ストアまたはバスに一時的に到達できない"""


class EmailTaken(StoreError):
    pass


class InvalidCredentials(StoreError):
    pass
