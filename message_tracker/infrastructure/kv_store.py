"""
Key-value store capability consumed by the dedup tracker.

Stores are dumb string maps with per-key expiry. Values are written as
serialized JSON strings; get() can hand them back raw or decoded.
"""

import logging
from typing import Any, Optional, Protocol, runtime_checkable

from message_tracker.config.settings import Settings

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal get / put-with-ttl / delete store."""

    async def get(self, key: str, *, as_json: bool = False) -> Optional[Any]:
        """
        Fetch a value.

        Args:
            key: Store key
            as_json: Decode the stored string as JSON

        Returns:
            The raw string (or decoded value), None when absent or expired

        Raises:
            ValueError: If as_json is set and the value is not valid JSON
        """
        ...

    async def put(self, key: str, value: str, *, ttl_seconds: int) -> None:
        """Write a value that expires after ttl_seconds."""
        ...

    async def delete(self, key: str) -> None:
        """Delete a key. Deleting an absent key is not an error."""
        ...


@runtime_checkable
class ConditionalKeyValueStore(KeyValueStore, Protocol):
    """Store that can atomically write a key only if it is absent."""

    async def put_if_absent(self, key: str, value: str, *, ttl_seconds: int) -> bool:
        """Write the value unless a live entry exists. Returns True if written."""
        ...


def build_store(settings: Settings) -> KeyValueStore:
    """
    Create the store selected by settings.kv_backend.

    Raises:
        ValueError: For an unknown backend name
    """
    backend = settings.kv_backend.lower()

    if backend == "sqlite":
        from message_tracker.infrastructure.database import async_session_factory
        from message_tracker.infrastructure.sql_kv_store import SqlKeyValueStore
        store = SqlKeyValueStore(async_session_factory)
    elif backend == "redis":
        from message_tracker.infrastructure.redis_kv_store import RedisKeyValueStore
        store = RedisKeyValueStore.from_url(settings.redis_url)
    elif backend == "memory":
        from message_tracker.infrastructure.memory_kv_store import InMemoryKeyValueStore
        store = InMemoryKeyValueStore()
    else:
        raise ValueError(f"Unknown KV backend: {settings.kv_backend!r}")

    logger.info(f"Using {backend} key-value store")
    return store
