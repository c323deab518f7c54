"""
List-based broker contract and implementations.

Two atomic operations give FIFO delivery per key: ``push_left`` appends to
the head of a list, ``blocking_pop_right`` takes from the tail. Accepted
values are retained until popped; durability across broker restarts is a
deployment concern (Redis with AOF enabled). Without it the pipeline
degrades to at-most-once.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from paylink.config import settings
from paylink.errors import BrokerUnavailableError

logger = logging.getLogger("paylink.queue.broker")


class Broker(ABC):
    @abstractmethod
    async def push_left(self, key: str, value: str) -> None:
        """Atomically append ``value`` to the head of list ``key``."""
        ...

    @abstractmethod
    async def blocking_pop_right(self, key: str, timeout: float) -> Optional[tuple[str, str]]:
        """Pop from the tail of ``key``, waiting up to ``timeout`` seconds. None on timeout."""
        ...

    @abstractmethod
    async def length(self, key: str) -> int:
        ...

    async def close(self) -> None:
        return None


class RedisBroker(Broker):
    """Broker backed by Redis lists (LPUSH / BRPOP)."""

    def __init__(self, client: redis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisBroker":
        return cls(redis.from_url(url, decode_responses=True, socket_connect_timeout=2))

    async def push_left(self, key: str, value: str) -> None:
        try:
            await self._client.lpush(key, value)
        except RedisError as e:
            raise BrokerUnavailableError(f"push to {key} failed: {e}") from e

    async def blocking_pop_right(self, key: str, timeout: float) -> Optional[tuple[str, str]]:
        try:
            result = await self._client.brpop([key], timeout=timeout)
        except RedisError as e:
            raise BrokerUnavailableError(f"pop from {key} failed: {e}") from e
        if result is None:
            return None
        popped_key, value = result
        return popped_key, value

    async def length(self, key: str) -> int:
        try:
            return await self._client.llen(key)
        except RedisError as e:
            raise BrokerUnavailableError(f"length of {key} failed: {e}") from e

    async def close(self) -> None:
        await self._client.aclose()


class InMemoryBroker(Broker):
    """Single-process broker. Useful for local dev and tests."""

    def __init__(self) -> None:
        self._lists: dict[str, deque[str]] = defaultdict(deque)
        self._cond = asyncio.Condition()

    async def push_left(self, key: str, value: str) -> None:
        async with self._cond:
            self._lists[key].appendleft(value)
            self._cond.notify_all()

    async def blocking_pop_right(self, key: str, timeout: float) -> Optional[tuple[str, str]]:
        async with self._cond:
            try:
                await asyncio.wait_for(self._cond.wait_for(lambda: bool(self._lists[key])), timeout)
            except asyncio.TimeoutError:
                return None
            return key, self._lists[key].pop()

    async def length(self, key: str) -> int:
        return len(self._lists[key])


_broker: Optional[Broker] = None


def get_broker() -> Broker:
    """Process-wide broker, created lazily from settings."""
    global _broker
    if _broker is None:
        _broker = RedisBroker.from_url(settings.redis_url)
    return _broker
