"""
Key-value persistence layer.

- redis_client.py: Redis async connection pooling
- store.py: KeyValueStore interface with Redis and in-memory backends

Storage Strategy:
- Risk scores stored as counters with a TTL equal to the risk window
- Rate-limit counters stored with a TTL equal to the limit window
- Backend chosen once at startup from REDIS_URL
"""

from pii_proxy.persistence.redis_client import RedisClient
from pii_proxy.persistence.store import (
    InMemoryStore,
    KeyValueStore,
    RedisStore,
    create_store,
)

__all__ = [
    "RedisClient",
    "KeyValueStore",
    "RedisStore",
    "InMemoryStore",
    "create_store",
]
