"""
In-process key-value store with TTL expiry.
Suitable for tests and single-process deployments only.
"""

import json
import time
from typing import Any, Callable, Dict, Optional, Tuple


class InMemoryKeyValueStore:
    """Dict-backed store. Expired entries are invisible and dropped lazily."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: Dict[str, Tuple[str, float]] = {}  # key -> (value, expires_at)

    def _live_value(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            # expired; cleanup
            self._data.pop(key, None)
            return None
        return value

    async def get(self, key: str, *, as_json: bool = False) -> Optional[Any]:
        value = self._live_value(key)
        if value is None or not as_json:
            return value
        return json.loads(value)

    async def put(self, key: str, value: str, *, ttl_seconds: int) -> None:
        self._data[key] = (value, self._clock() + ttl_seconds)

    async def put_if_absent(self, key: str, value: str, *, ttl_seconds: int) -> bool:
        if self._live_value(key) is not None:
            return False
        self._data[key] = (value, self._clock() + ttl_seconds)
        return True

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def purge_expired(self) -> int:
        now = self._clock()
        expired = [k for k, (_, exp) in self._data.items() if exp <= now]
        for k in expired:
            del self._data[k]
        return len(expired)

    def __len__(self) -> int:
        return len(self._data)
