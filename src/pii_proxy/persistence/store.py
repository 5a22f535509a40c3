"""
Key-value store abstraction for session and rate-limit state.

Storage Strategy:
- Risk scores: string counter per session, key = "risk:{session_id}", TTL = risk window
- Session counters: hash per session, key = "session:{session_id}"
- Rate limits: string counter, key = "ratelimit:{session_id}", TTL = limit window

Two interchangeable backends implement the same narrow interface. Callers
never check which one is active.
"""

import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional, Union

import structlog
from redis.asyncio import Redis as AsyncRedis

from pii_proxy.config import Settings
from pii_proxy.persistence.redis_client import RedisClient

logger = structlog.get_logger(__name__)


# INCRBY and first-increment EXPIRE as one atomic step
_INCR_WINDOW_LUA = """
local value = redis.call('INCRBY', KEYS[1], ARGV[1])
if value == tonumber(ARGV[1]) then
    redis.call('EXPIRE', KEYS[1], ARGV[2])
end
return value
"""


class KeyValueStore(ABC):
    """Single-key atomic operations used by the session and rate-limit layers."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        pass

    @abstractmethod
    async def incr(self, key: str) -> int:
        pass

    @abstractmethod
    async def incr_window(self, key: str, amount: int, ttl_seconds: int) -> int:
        """
        Add amount to a counter; the increment that creates the key also
        sets its TTL. Later increments leave the TTL alone, so the counter
        resets once the window lapses.

        Returns:
            The counter value after the increment
        """
        pass

    @abstractmethod
    async def expire(self, key: str, ttl_seconds: int) -> bool:
        pass

    @abstractmethod
    async def hincrby(self, key: str, field: str, increment: int) -> int:
        pass

    @abstractmethod
    async def hget(self, key: str, field: str) -> Optional[str]:
        pass

    @abstractmethod
    async def delete(self, key: str) -> int:
        pass

    @abstractmethod
    async def ping(self) -> bool:
        pass

    async def close(self) -> None:
        pass


class RedisStore(KeyValueStore):
    """Store backed by Redis (shared across proxy replicas)."""

    def __init__(self, redis_client: AsyncRedis):
        self.redis = redis_client
        self._incr_window_script = redis_client.register_script(_INCR_WINDOW_LUA)

    async def get(self, key: str) -> Optional[str]:
        return await self.redis.get(key)

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        if ttl_seconds:
            await self.redis.set(key, value, ex=ttl_seconds)
        else:
            await self.redis.set(key, value)

    async def incr(self, key: str) -> int:
        return int(await self.redis.incr(key))

    async def incr_window(self, key: str, amount: int, ttl_seconds: int) -> int:
        value = await self._incr_window_script(keys=[key], args=[amount, ttl_seconds])
        return int(value)

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        return bool(await self.redis.expire(key, ttl_seconds))

    async def hincrby(self, key: str, field: str, increment: int) -> int:
        return int(await self.redis.hincrby(key, field, increment))

    async def hget(self, key: str, field: str) -> Optional[str]:
        return await self.redis.hget(key, field)

    async def delete(self, key: str) -> int:
        return int(await self.redis.delete(key))

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except Exception as e:
            logger.warning("Redis ping failed", error=str(e))
            return False

    async def close(self) -> None:
        await self.redis.aclose()


@dataclass
class _Entry:
    value: Union[str, dict[str, str]]
    expires_at: Optional[float] = None


class InMemoryStore(KeyValueStore):
    """
    Process-local store for development and single-replica deployments.

    Keys expire lazily on access. Capacity is bounded: once max_size keys
    exist, the least recently used key is evicted. Every operation runs
    without awaiting, so it is atomic with respect to the event loop.
    """

    def __init__(self, max_size: int = 10_000, clock: Callable[[], float] = time.monotonic):
        self.max_size = max_size
        self._clock = clock
        self._data: "OrderedDict[str, _Entry]" = OrderedDict()

    def _live_entry(self, key: str) -> Optional[_Entry]:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and self._clock() >= entry.expires_at:
            del self._data[key]
            return None
        self._data.move_to_end(key)
        return entry

    def _put(self, key: str, entry: _Entry) -> None:
        if key not in self._data and len(self._data) >= self.max_size:
            self._data.popitem(last=False)
            logger.debug("Evicted least recently used key", size=len(self._data))
        self._data[key] = entry
        self._data.move_to_end(key)

    def _deadline(self, ttl_seconds: Optional[int]) -> Optional[float]:
        return self._clock() + ttl_seconds if ttl_seconds else None

    def _counter(self, entry: Optional[_Entry]) -> int:
        if entry is None:
            return 0
        if not isinstance(entry.value, str):
            raise TypeError("Operation against a key holding a hash")
        return int(entry.value)

    async def get(self, key: str) -> Optional[str]:
        entry = self._live_entry(key)
        if entry is None or not isinstance(entry.value, str):
            return None
        return entry.value

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        self._put(key, _Entry(value=value, expires_at=self._deadline(ttl_seconds)))

    async def incr(self, key: str) -> int:
        entry = self._live_entry(key)
        new_value = self._counter(entry) + 1
        # INCR keeps any existing TTL
        self._put(key, _Entry(value=str(new_value), expires_at=entry.expires_at if entry else None))
        return new_value

    async def incr_window(self, key: str, amount: int, ttl_seconds: int) -> int:
        entry = self._live_entry(key)
        if entry is None:
            self._put(key, _Entry(value=str(amount), expires_at=self._deadline(ttl_seconds)))
            return amount
        new_value = self._counter(entry) + amount
        entry.value = str(new_value)
        return new_value

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        entry = self._live_entry(key)
        if entry is None:
            return False
        entry.expires_at = self._deadline(ttl_seconds)
        return True

    async def hincrby(self, key: str, field: str, increment: int) -> int:
        entry = self._live_entry(key)
        if entry is None:
            entry = _Entry(value={})
            self._put(key, entry)
        if not isinstance(entry.value, dict):
            raise TypeError("Hash operation against a key holding a string")
        new_value = int(entry.value.get(field, "0")) + increment
        entry.value[field] = str(new_value)
        return new_value

    async def hget(self, key: str, field: str) -> Optional[str]:
        entry = self._live_entry(key)
        if entry is None or not isinstance(entry.value, dict):
            return None
        return entry.value.get(field)

    async def delete(self, key: str) -> int:
        return 1 if self._data.pop(key, None) is not None else 0

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


def create_store(settings: Settings) -> KeyValueStore:
    """Redis store when REDIS_URL is configured, in-memory otherwise."""
    if settings.REDIS_URL:
        logger.info("Using Redis store")
        return RedisStore(RedisClient.get_async_client(settings))

    logger.info("Using in-memory store (no REDIS_URL provided)")
    return InMemoryStore()
