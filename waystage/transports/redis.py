"""Redis transport for cross-process signal delivery."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Optional

import redis.asyncio as redis
from pydantic import ValidationError

from ..contracts import ActivitySignal
from .base import BaseTransport, SignalDelivery

logger = logging.getLogger(__name__)


class RedisTransport(BaseTransport):
    """Redis-based transport using lists as queues."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self._redis: Optional[Any] = None

    @staticmethod
    def queue_name(topic: str) -> str:
        return f"waystage:{topic}"

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, topic: str, signal: ActivitySignal) -> None:
        """Publish signal to Redis list (acting as queue)."""
        if not self._redis:
            await self.connect()

        await self._redis.lpush(self.queue_name(topic), signal.to_json())

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[SignalDelivery]:
        """Subscribe to signals from Redis queue."""
        if not self._redis:
            await self.connect()

        queue_name = self.queue_name(topic)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + lifespan if lifespan else None

        while deadline is None or loop.time() < deadline:
            result = await self._redis.brpop(queue_name, timeout=1)
            if result:
                _, message_json = result
                try:
                    signal = ActivitySignal.from_json(message_json)
                except ValidationError as e:
                    logger.warning(f"Dropping malformed signal on {queue_name}: {e}")
                    continue
                yield SignalDelivery(message_json, signal)
