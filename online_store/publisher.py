"""
Event Publisher — ベストエフォートのイベント発行

イベントはコミット後に送るだけの通知で、確認応答は待たない。
発行の失敗はログに残して握りつぶし、呼び出し元へは伝えない。

1 回の発行には publish_timeout の上限を設け、バスが詰まっても
呼び出し元を止めない。
"""

import asyncio
import logging

import redis.asyncio as aioredis

from .events import DomainEvent
from .protocols import BusTransport

logger = logging.getLogger(__name__)


class RedisTransport:
    """Redis Pub/Sub のチャネルをトピックとして使う。"""

    def __init__(self, redis: aioredis.Redis) -> None:
        self.redis = redis

    async def publish(self, topic: str, payload: str) -> None:
        await self.redis.publish(topic, payload)


class EventPublisher:
    def __init__(self, transport: BusTransport, timeout: float = 2.0) -> None:
        self.transport = transport
        self.timeout = timeout

    async def emit(self, event: DomainEvent) -> bool:
        """イベントを発行する。成功したかどうかを返すが、例外は投げない。"""
        payload = event.model_dump_json()
        try:
            await asyncio.wait_for(
                self.transport.publish(event.topic, payload), self.timeout
            )
        except Exception:
            logger.exception("Failed to publish %s event", event.topic)
            return False
        logger.debug("Published %s: %s", event.topic, payload)
        return True
