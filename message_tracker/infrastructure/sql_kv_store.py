"""
Key-value store backed by a SQLite table.

SQLite has no native key expiry: reads ignore rows whose expires_at has
passed, and the scheduler's purge job deletes them periodically.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from sqlalchemy import delete
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from message_tracker.domain.kv_entry import KVEntry
from message_tracker.utils.time import utc_now_naive

logger = logging.getLogger(__name__)


class SqlKeyValueStore:
    """Store with one KVEntry row per key. Each call uses its own session."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utc_now_naive,
    ):
        self.session_factory = session_factory
        self._clock = clock

    def _expiry(self, ttl_seconds: int) -> datetime:
        return self._clock() + timedelta(seconds=ttl_seconds)

    async def get(self, key: str, *, as_json: bool = False) -> Optional[Any]:
        async with self.session_factory() as session:
            entry = await session.get(KVEntry, key)
            if entry is None or entry.expires_at <= self._clock():
                return None
            value = entry.value

        return json.loads(value) if as_json else value

    async def put(self, key: str, value: str, *, ttl_seconds: int) -> None:
        """Insert or fully overwrite a key in a single statement."""
        expires_at = self._expiry(ttl_seconds)
        created_at = self._clock()
        stmt = sqlite_insert(KVEntry).values(
            key=key,
            value=value,
            expires_at=expires_at,
            created_at=created_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[KVEntry.key],
            set_={"value": value, "expires_at": expires_at, "created_at": created_at},
        )

        async with self.session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    async def put_if_absent(self, key: str, value: str, *, ttl_seconds: int) -> bool:
        """
        Insert the key unless a live row exists.

        An expired row for the same key is removed first so that it does not
        block the insert; the primary key makes the insert itself atomic.
        """
        async with self.session_factory() as session:
            await session.execute(
                delete(KVEntry).where(
                    KVEntry.key == key,
                    KVEntry.expires_at <= self._clock(),
                )
            )
            session.add(
                KVEntry(
                    key=key,
                    value=value,
                    expires_at=self._expiry(ttl_seconds),
                    created_at=self._clock(),
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return False
            return True

    async def delete(self, key: str) -> None:
        async with self.session_factory() as session:
            await session.execute(delete(KVEntry).where(KVEntry.key == key))
            await session.commit()

    async def purge_expired(self) -> int:
        """
        Remove rows that have outlived their TTL.

        Returns:
            Number of rows deleted
        """
        async with self.session_factory() as session:
            result = await session.execute(
                delete(KVEntry).where(KVEntry.expires_at <= self._clock())
            )
            await session.commit()

        if result.rowcount:
            logger.info(f"Purged {result.rowcount} expired entries")
        return result.rowcount or 0
