"""
Online Store — Redis Pub/Sub サブスクライバー

ルーターが扱うすべてのトピックを購読し、受信したメッセージを
1 件ずつ独立したタスクとしてルーターへ渡す。

注意: Redis Pub/Sub は fire-and-forget 方式。
サービスがダウンしている間のメッセージは失われる。
発行側が再送する場合に備え、各ハンドラは冪等に作られている。
"""

import asyncio
import logging

import redis.asyncio as aioredis

from .router import InboundEventRouter

logger = logging.getLogger(__name__)


async def _pause(shutdown_event: asyncio.Event, delay: float) -> None:
    """delay 秒待つ。途中で shutdown_event がセットされたらすぐ戻る。"""
    try:
        await asyncio.wait_for(shutdown_event.wait(), delay)
    except asyncio.TimeoutError:
        pass


async def run_subscriber(
    redis_url: str,
    router: InboundEventRouter,
    shutdown_event: asyncio.Event,
    retry_delay: float = 1.0,
) -> None:
    """
    shutdown_event がセットされるまで無限ループで待機する。
    1 件の処理失敗でループは止まらない。ブローカーに接続できない間は
    retry_delay 秒ごとに購読をやり直す。
    """
    redis_conn = aioredis.from_url(redis_url, decode_responses=True)
    pubsub = redis_conn.pubsub()
    subscribed = False

    in_flight: set[asyncio.Task] = set()
    try:
        while not shutdown_event.is_set():
            if not subscribed:
                try:
                    await pubsub.subscribe(*router.topics)
                except Exception:
                    logger.exception(
                        "Failed to subscribe, retrying in %.1fs", retry_delay
                    )
                    await _pause(shutdown_event, retry_delay)
                    continue
                subscribed = True
                logger.info("Subscribed to %s", ", ".join(router.topics))

            try:
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=1.0
                )
            except Exception:
                logger.exception("Failed to read from pubsub")
                await asyncio.sleep(1.0)
                continue

            if message and message["type"] == "message":
                task = asyncio.create_task(
                    router.dispatch(message["channel"], message["data"])
                )
                in_flight.add(task)
                task.add_done_callback(in_flight.discard)
            else:
                await asyncio.sleep(0.1)
    finally:
        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)
        if subscribed:
            try:
                await pubsub.unsubscribe()
            except Exception:
                logger.exception("Failed to unsubscribe")
        await pubsub.aclose()
        await redis_conn.aclose()
