# infra/cache.py
"""
Key/value backends for job state and the look result cache.

Both backends expose the same async contract: get / set / delete on
JSON-serializable values. No transactions and no locking; callers rely on
single-writer discipline per key.
"""
import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class MemoryCache:
    """
    Process-local store with optional TTLs.
    Used by tests and single-process deployments.
    """

    def __init__(self):
        self._data: Dict[str, Tuple[Optional[float], str]] = {}

    async def get(self, key: str) -> Optional[Any]:
        hit = self._data.get(key)
        if not hit:
            return None
        expires_at, raw = hit
        if expires_at is not None and time.time() > expires_at:
            self._data.pop(key, None)
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        expires_at = time.time() + ttl if ttl else None
        # Serialize on write so callers never share mutable state with the store
        self._data[key] = (expires_at, json.dumps(value))

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __len__(self):
        return len(self._data)


class RedisCache:
    """
    Redis-backed store.

    Connection problems are logged and behave like cache misses so a
    flaky Redis never fails an assembly job.
    """

    def __init__(
        self,
        redis_url: str,
        client: Optional[Any] = None
    ):
        """
        Initialize cache.

        Args:
            redis_url: Redis connection URL
            client: Optional pre-built async client (tests inject a fake)
        """
        self.redis_url = redis_url
        self._client = client

    def _get_client(self):
        if self._client is None:
            self._client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True
            )
        return self._client

    async def get(self, key: str) -> Optional[Any]:
        try:
            data = await self._get_client().get(key)
        except Exception as e:
            logger.warning(f"[Cache] get error for {key}: {e}")
            return None
        if not data:
            return None
        try:
            return json.loads(data)
        except json.JSONDecodeError:
            logger.warning(f"[Cache] Dropping undecodable value at {key}")
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        data = json.dumps(value)
        try:
            if ttl:
                await self._get_client().setex(key, ttl, data)
            else:
                await self._get_client().set(key, data)
        except Exception as e:
            logger.warning(f"[Cache] set error for {key}: {e}")

    async def delete(self, key: str) -> None:
        try:
            await self._get_client().delete(key)
        except Exception as e:
            logger.warning(f"[Cache] delete error for {key}: {e}")

    async def close(self):
        """Close Redis connection"""
        if self._client is not None:
            await self._client.aclose()
            logger.info("[Cache] Disconnected from Redis")
