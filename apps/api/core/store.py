"""
Key-Value Persistence Layer

The engine only needs get/set/remove by string key with JSON values.
Two implementations:
- RedisKeyValueStore: Redis-backed, used by the API process.
- MemoryKeyValueStore: in-process dict, used for tests and offline runs.

Writes are best-effort. A store that runs out of capacity raises
StoreQuotaExceededError; callers decide whether that is fatal (it never is for
the sync engine, see services.session_repository).
"""
import json
import logging
from typing import Any, Dict, Optional, Protocol

import redis
from redis.exceptions import ConnectionError, TimeoutError, RedisError, ResponseError

from core.config import settings
from core.exceptions import StoreQuotaExceededError

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...


_redis_client: Optional[redis.Redis] = None


def get_redis_client(url: Optional[str] = None) -> Optional[redis.Redis]:
    """
    Redis client for the configured URL, built and pinged once then reused.
    An explicit `url` always gets a fresh, uncached client.
    Returns None if Redis is unavailable.
    """
    global _redis_client
    if url is None and _redis_client is not None:
        return _redis_client
    try:
        client = redis.from_url(
            url or settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
            retry_on_timeout=True,
            health_check_interval=30
        )
        client.ping()
        logger.info("Redis connection established")
        if url is None:
            _redis_client = client
        return client
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Redis unavailable: {e}. Falling back to in-memory state.")
        return None


class MemoryKeyValueStore:
    """Dict-backed store. Values are round-tripped through JSON like the real one."""

    def __init__(self, max_bytes: Optional[int] = None):
        self.max_bytes = max_bytes
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        raw = json.dumps(value, default=str)
        if self.max_bytes is not None:
            used = sum(len(v) for k, v in self._data.items() if k != key)
            if used + len(raw) > self.max_bytes:
                raise StoreQuotaExceededError(f"Store quota exceeded writing {key}")
        self._data[key] = raw

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class RedisKeyValueStore:
    """Redis-backed store. Keys are stored as-is, values as JSON strings."""

    def __init__(self, client: redis.Redis):
        self.client = client

    def get(self, key: str) -> Optional[Any]:
        raw = self.client.get(key)
        if not raw:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        try:
            self.client.set(key, json.dumps(value, default=str))
        except ResponseError as e:
            # Redis at maxmemory answers "OOM command not allowed ..."
            if "OOM" in str(e):
                raise StoreQuotaExceededError(str(e)) from e
            raise

    def remove(self, key: str) -> None:
        self.client.delete(key)


def build_store() -> KeyValueStore:
    """Redis store if reachable, in-memory otherwise."""
    client = get_redis_client()
    if client is None:
        return MemoryKeyValueStore()
    return RedisKeyValueStore(client)
