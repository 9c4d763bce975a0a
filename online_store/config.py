"""
Online Store — 設定

すべての設定は環境変数から読み込む（設定ファイルは持たない）。
"""

import logging
import os
from dataclasses import dataclass

# 在庫がこの値を下回ったら inventory/low_stock を発行する（固定値）
LOW_STOCK_THRESHOLD = 10


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str
    redis_url: str
    publish_timeout: float
    log_level: str
    create_schema: bool
    seed_sample_data: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.environ.get(
                "DATABASE_URL", "sqlite+aiosqlite:///./online_store.db"
            ),
            redis_url=os.environ.get("REDIS_URL", "redis://localhost:6379"),
            publish_timeout=float(os.environ.get("PUBLISH_TIMEOUT", "2.0")),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            create_schema=_env_bool("CREATE_SCHEMA", True),
            seed_sample_data=_env_bool("SEED_SAMPLE_DATA", False),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
