"""
Online Store — 注文ライフサイクルと在庫整合性のバックエンド

REST API (FastAPI) + リレーショナルストア (SQLAlchemy async) +
Pub/Sub メッセージバス (Redis) で構成されるイベント駆動サービス。
"""

__version__ = "0.1.0"
