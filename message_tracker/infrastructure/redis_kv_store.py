"""
Key-value store backed by Redis. Expiry is native (SET ... EX).
"""

import json
from typing import Any, Optional

from redis.asyncio import Redis


class RedisKeyValueStore:
    """Thin adapter over redis.asyncio; values are stored as strings."""

    def __init__(self, redis: Redis):
        self._r = redis

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyValueStore":
        return cls(Redis.from_url(url, decode_responses=True))

    async def get(self, key: str, *, as_json: bool = False) -> Optional[Any]:
        value = await self._r.get(key)
        if value is None or not as_json:
            return value
        return json.loads(value)

    async def put(self, key: str, value: str, *, ttl_seconds: int) -> None:
        await self._r.set(key, value, ex=ttl_seconds)

    async def put_if_absent(self, key: str, value: str, *, ttl_seconds: int) -> bool:
        # SET NX returns None when the key already exists
        result = await self._r.set(key, value, ex=ttl_seconds, nx=True)
        return bool(result)

    async def delete(self, key: str) -> None:
        await self._r.delete(key)

    async def close(self) -> None:
        await self._r.aclose()
