"""
Order Hub — Realtime pub/sub channel

Topics are room names (admin-room, order-<id>). Handlers are async callables
`handler(topic, payload)`; they run one after another in subscription order,
so every subscriber sees a topic's events in publish order. A failing handler
is logged and skipped.

  InMemoryChannel — single process, publish() delivers directly.
  RedisChannel    — publish() goes through Redis pub/sub; a listener task
                    fans incoming messages out to the local handlers.
"""
import asyncio
import itertools
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError

from orderhub.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

Handler = Callable[[str, dict[str, Any]], Awaitable[None]]

_subscription_ids = itertools.count(1)


@dataclass(eq=False)
class Subscription:
    topic: str
    handler: Handler
    id: int = field(default_factory=lambda: next(_subscription_ids))


class Channel:
    """Local handler registry shared by every backend."""

    backend = "base"

    def __init__(self):
        self._subscriptions: dict[str, list[Subscription]] = {}
        self._closed = False

    async def subscribe(self, topic: str, handler: Handler) -> Subscription:
        if self._closed:
            raise RuntimeError("Channel is closed")
        sub = Subscription(topic=topic, handler=handler)
        self._subscriptions.setdefault(topic, []).append(sub)
        logger.debug("Subscribed #%d to %s", sub.id, topic)
        return sub

    async def unsubscribe(self, subscription: Subscription) -> None:
        subs = self._subscriptions.get(subscription.topic)
        if not subs or subscription not in subs:
            return
        subs.remove(subscription)
        if not subs:
            del self._subscriptions[subscription.topic]
        logger.debug("Unsubscribed #%d from %s", subscription.id, subscription.topic)

    async def publish(self, topic: str, payload: dict[str, Any]) -> int:
        raise NotImplementedError

    async def ping(self) -> bool:
        return not self._closed

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscriptions.get(topic, ()))

    def stats(self) -> dict[str, int]:
        return {topic: len(subs) for topic, subs in self._subscriptions.items()}

    async def close(self) -> None:
        self._closed = True
        self._subscriptions.clear()

    async def _dispatch(self, topic: str, payload: dict[str, Any]) -> int:
        delivered = 0
        # copy: handlers may unsubscribe while we iterate
        for sub in list(self._subscriptions.get(topic, ())):
            try:
                await sub.handler(topic, payload)
                delivered += 1
            except Exception:
                logger.exception("Realtime handler #%d failed on %s", sub.id, topic)
        return delivered


class InMemoryChannel(Channel):
    backend = "memory"

    async def publish(self, topic: str, payload: dict[str, Any]) -> int:
        if self._closed:
            raise RuntimeError("Channel is closed")
        return await self._dispatch(topic, payload)


class RedisChannel(Channel):
    """
    Redis pub/sub backed channel for multi-process deployments.
    publish() returns the number of Redis-level subscribers that received the message.
    """

    backend = "redis"

    def __init__(self, redis: aioredis.Redis):
        super().__init__()
        self._redis = redis
        self._pubsub = redis.pubsub()
        self._listener: asyncio.Task | None = None

    async def subscribe(self, topic: str, handler: Handler) -> Subscription:
        first = self.subscriber_count(topic) == 0
        sub = await super().subscribe(topic, handler)
        if first:
            await self._pubsub.subscribe(topic)
        if self._listener is None or self._listener.done():
            self._listener = asyncio.create_task(self._listen())
        return sub

    async def unsubscribe(self, subscription: Subscription) -> None:
        await super().unsubscribe(subscription)
        if self.subscriber_count(subscription.topic) == 0 and not self._closed:
            await self._pubsub.unsubscribe(subscription.topic)

    async def publish(self, topic: str, payload: dict[str, Any]) -> int:
        if self._closed:
            raise RuntimeError("Channel is closed")
        return await self._redis.publish(topic, json.dumps(payload, default=str))

    async def ping(self) -> bool:
        return bool(await self._redis.ping())

    async def _listen(self) -> None:
        while not self._closed:
            try:
                message = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            except RedisConnectionError as exc:
                logger.warning("Redis pub/sub connection lost: %s", exc)
                await asyncio.sleep(settings.REALTIME_RETRY_SECONDS)
                continue
            if not message or message["type"] != "message":
                continue
            try:
                payload = json.loads(message["data"])
            except (TypeError, ValueError):
                logger.warning("Dropping non-JSON message on %s", message.get("channel"))
                continue
            await self._dispatch(message["channel"], payload)

    async def close(self) -> None:
        await super().close()
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
        await self._pubsub.unsubscribe()
        await self._pubsub.aclose()
        await self._redis.aclose()


# ── Process-wide channel ─────────────────────────────────────
_channel: Channel | None = None


def get_channel() -> Channel:
    global _channel
    if _channel is None:
        if settings.REALTIME_BACKEND == "memory":
            _channel = InMemoryChannel()
        else:
            _channel = RedisChannel(
                aioredis.from_url(
                    settings.redis_url,
                    decode_responses=True,
                    socket_connect_timeout=settings.HEALTH_CHECK_TIMEOUT,
                )
            )
        logger.info("Realtime channel backend: %s", _channel.backend)
    return _channel


async def close_channel():
    global _channel
    if _channel:
        await _channel.close()
        _channel = None
