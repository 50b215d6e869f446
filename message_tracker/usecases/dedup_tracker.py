"""
Message deduplication tracker.

Records which message identifiers have been handled so that retried or
duplicated deliveries are suppressed. The key-value store is the only
source of truth; the tracker keeps no records in memory and any number of
instances can share one store.

A record is treated as "processed" only for a short retry window after it
was written. Past that window the message becomes retry-eligible again,
on the assumption that the original processing may have failed silently.
The record itself lives until the store expires it.

Checking and marking are separate calls, so two concurrent first-time
deliveries of the same id can both see "not processed". claim() closes
that window on stores that support an atomic put-if-absent.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Union

from message_tracker.config.settings import Settings
from message_tracker.domain.processing_record import (
    RESERVED_FIELDS,
    ErrorPolicy,
    ProcessingRecord,
    TrackerOptions,
)
from message_tracker.infrastructure.kv_store import ConditionalKeyValueStore, KeyValueStore
from message_tracker.infrastructure.observability import DedupEvent, EventSink, LoggingEventSink
from message_tracker.utils.time import epoch_millis, from_epoch_millis, to_iso, utc_now

DEFAULT_RETRY_WINDOW_MS = 5 * 60 * 1000


class DedupTracker:
    """Decides whether a message id was already handled and records outcomes."""

    # What each operation does when the store (or the batch fan-out) fails
    ERROR_POLICIES: Dict[str, ErrorPolicy] = {
        "is_processed": ErrorPolicy.FAIL_OPEN,
        "mark_processed": ErrorPolicy.REPORT,
        "get_process_info": ErrorPolicy.DEGRADE,
        "check_multiple": ErrorPolicy.DEGRADE,
        "remove": ErrorPolicy.RAISE,
        "clear": ErrorPolicy.REPORT,
        "claim": ErrorPolicy.FAIL_OPEN,
        "cleanup_expired_records": ErrorPolicy.DEGRADE,
    }

    def __init__(
        self,
        store: KeyValueStore,
        options: Union[TrackerOptions, Mapping[str, Any], None] = None,
        *,
        retry_window_ms: int = DEFAULT_RETRY_WINDOW_MS,
        events: Optional[EventSink] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            store: Backing key-value store
            options: TrackerOptions or a mapping with expirationTtl / keyPrefix
            retry_window_ms: Age after which a record no longer suppresses a message
            events: Receiver for tracker events (defaults to logging)
            clock: Returns the current aware UTC datetime
        """
        if options is None:
            options = TrackerOptions()
        elif not isinstance(options, TrackerOptions):
            options = TrackerOptions.model_validate(dict(options))

        if retry_window_ms < 0:
            raise ValueError("retry_window_ms must not be negative")

        self.store = store
        self._options = options
        self._retry_window_ms = retry_window_ms
        self.events = events or LoggingEventSink()
        self._clock = clock

    @classmethod
    def from_settings(cls, store: KeyValueStore, settings: Settings, **kwargs) -> "DedupTracker":
        """Build a tracker from application settings."""
        options = TrackerOptions(
            expiration_ttl=settings.dedup_expiration_ttl,
            key_prefix=settings.dedup_key_prefix,
        )
        return cls(
            store,
            options,
            retry_window_ms=settings.dedup_retry_window_seconds * 1000,
            **kwargs,
        )

    @property
    def ttl_seconds(self) -> int:
        return self._options.expiration_ttl

    @property
    def key_prefix(self) -> str:
        return self._options.key_prefix

    @property
    def retry_window_ms(self) -> int:
        return self._retry_window_ms

    def get_message_key(self, msg_id: str) -> str:
        """Namespaced store key for a message id."""
        return f"{self.key_prefix}:{msg_id}"

    # --- internals ---

    def _now_ms(self) -> int:
        return epoch_millis(self._clock())

    def _is_stale(self, timestamp: Optional[int], now_ms: int) -> bool:
        # Records without a timestamp (or with 0) never become retry-eligible
        return bool(timestamp) and timestamp < now_ms - self._retry_window_ms

    def _on_error(
        self,
        operation: str,
        error: Exception,
        msg_id: Optional[str],
        default: Any,
        event: DedupEvent = DedupEvent.STORE_ERROR,
    ) -> Any:
        policy = self.ERROR_POLICIES[operation]
        self.events.emit(event, msg_id, error, operation=operation, policy=policy.value)
        if policy is ErrorPolicy.RAISE:
            raise error
        return default

    def _build_record(self, msg_id: str, metadata: Optional[Mapping[str, Any]]) -> ProcessingRecord:
        extra = dict(metadata or {})
        dropped = [name for name in RESERVED_FIELDS if name in extra]
        for name in dropped:
            del extra[name]
        if dropped:
            self.events.emit(DedupEvent.RESERVED_METADATA, msg_id, fields=dropped)

        timestamp = self._now_ms()
        return ProcessingRecord(
            msgId=msg_id,
            processedAt=to_iso(from_epoch_millis(timestamp)),
            timestamp=timestamp,
            **extra,
        )

    # --- operations ---

    async def is_processed(self, msg_id: str) -> bool:
        """
        Check whether a message was handled within the retry window.

        Empty ids and store failures report "not processed" so that a
        message is never dropped because of the tracker.

        Args:
            msg_id: Message identifier

        Returns:
            True if a fresh record exists and the message should be skipped
        """
        if not msg_id:
            self.events.emit(DedupEvent.EMPTY_ID, operation="is_processed")
            return False

        try:
            record = await self.store.get(self.get_message_key(msg_id), as_json=True)

            if not record:
                self.events.emit(DedupEvent.LOOKUP_MISS, msg_id)
                return False

            timestamp = record.get("timestamp")
            if self._is_stale(timestamp, self._now_ms()):
                self.events.emit(
                    DedupEvent.RETRY_ELIGIBLE,
                    msg_id,
                    last_processed=to_iso(from_epoch_millis(timestamp)),
                )
                return False

            self.events.emit(DedupEvent.DUPLICATE, msg_id, processed_at=record.get("processedAt"))
            return True
        except Exception as e:
            return self._on_error("is_processed", e, msg_id, False)

    async def mark_processed(self, msg_id: str, metadata: Optional[Mapping[str, Any]] = None) -> bool:
        """
        Record that a message has been handled.

        Called after the side effect already happened, so it never raises:
        False tells the caller that deduplication is not guaranteed.

        Args:
            msg_id: Message identifier
            metadata: Extra JSON-serializable fields stored with the record
                (e.g. externalUserid, content, success, error)

        Returns:
            True if the record was written
        """
        if not msg_id:
            self.events.emit(DedupEvent.EMPTY_ID, operation="mark_processed")
            return False

        key = self.get_message_key(msg_id)
        try:
            record = self._build_record(msg_id, metadata)
            await self.store.put(
                key,
                record.model_dump_json(by_alias=True),
                ttl_seconds=self.ttl_seconds,
            )
        except Exception as e:
            return self._on_error("mark_processed", e, msg_id, False)

        self.events.emit(
            DedupEvent.MARKED,
            msg_id,
            key=key,
            success=record.metadata.get("success"),
            timestamp=record.timestamp,
        )
        return True

    async def get_process_info(self, msg_id: str) -> Optional[ProcessingRecord]:
        """Stored record for a message, or None if missing or unreadable."""
        if not msg_id:
            return None

        try:
            raw = await self.store.get(self.get_message_key(msg_id))
            if not raw:
                return None
            return ProcessingRecord.model_validate_json(raw)
        except Exception as e:
            return self._on_error("get_process_info", e, msg_id, None)

    async def check_multiple(self, msg_ids: Iterable[str]) -> Dict[str, bool]:
        """
        Check several messages concurrently.

        Individual lookups already fail open. If the batch itself fails,
        every id is reported as not processed.
        """
        ids = list(dict.fromkeys(msg_ids))

        try:
            checks = await asyncio.gather(*(self.is_processed(msg_id) for msg_id in ids))
            return dict(zip(ids, checks))
        except Exception as e:
            return self._on_error(
                "check_multiple",
                e,
                None,
                {msg_id: False for msg_id in ids},
                event=DedupEvent.BATCH_ERROR,
            )

    async def remove(self, msg_id: str) -> None:
        """
        Delete a message record. Store errors propagate.

        Raises:
            ValueError: If msg_id is empty
        """
        if not msg_id:
            raise ValueError("msg_id must be a non-empty string")

        try:
            await self.store.delete(self.get_message_key(msg_id))
        except Exception as e:
            self._on_error("remove", e, msg_id, None)

        self.events.emit(DedupEvent.REMOVED, msg_id)

    async def clear(self, msg_id: str) -> bool:
        """Delete a message record, reporting failure instead of raising."""
        if not msg_id:
            self.events.emit(DedupEvent.EMPTY_ID, operation="clear")
            return False

        try:
            await self.store.delete(self.get_message_key(msg_id))
        except Exception as e:
            return self._on_error("clear", e, msg_id, False)

        self.events.emit(DedupEvent.CLEARED, msg_id)
        return True

    async def claim(self, msg_id: str, metadata: Optional[Mapping[str, Any]] = None) -> bool:
        """
        Atomically take ownership of processing a message.

        Writes the record only if no live record exists. A stale record
        (past the retry window) is overwritten and the caller owns the retry.
        Stores without put_if_absent fall back to is_processed followed by
        mark_processed, which keeps the check-then-act race.

        Returns:
            True if the caller should process the message
        """
        if not msg_id:
            self.events.emit(DedupEvent.EMPTY_ID, operation="claim")
            return False

        if not isinstance(self.store, ConditionalKeyValueStore):
            self.events.emit(DedupEvent.CLAIM_UNSUPPORTED, msg_id)
            if await self.is_processed(msg_id):
                return False
            await self.mark_processed(msg_id, metadata)
            return True

        key = self.get_message_key(msg_id)
        try:
            payload = self._build_record(msg_id, metadata).model_dump_json(by_alias=True)

            if await self.store.put_if_absent(key, payload, ttl_seconds=self.ttl_seconds):
                self.events.emit(DedupEvent.CLAIMED, msg_id)
                return True

            existing = await self.store.get(key, as_json=True)
            if not existing:
                # expired or deleted in between
                claimed = await self.store.put_if_absent(key, payload, ttl_seconds=self.ttl_seconds)
            elif self._is_stale(existing.get("timestamp"), self._now_ms()):
                await self.store.put(key, payload, ttl_seconds=self.ttl_seconds)
                claimed = True
            else:
                claimed = False
        except Exception as e:
            return self._on_error("claim", e, msg_id, True)

        if claimed:
            self.events.emit(DedupEvent.CLAIMED, msg_id, retry=bool(existing))
        else:
            self.events.emit(
                DedupEvent.DUPLICATE,
                msg_id,
                processed_at=existing.get("processedAt") if existing else None,
            )
        return claimed

    async def cleanup_expired_records(self) -> int:
        """
        Manually purge expired records.

        Expiry is managed by the store. Stores that expire keys natively have
        nothing to purge and this returns 0.
        """
        purge = getattr(self.store, "purge_expired", None)
        if purge is None:
            self.events.emit(DedupEvent.CLEANUP, note="expiry is managed by the store")
            return 0

        try:
            purged = await purge()
        except Exception as e:
            return self._on_error("cleanup_expired_records", e, None, 0)

        self.events.emit(DedupEvent.CLEANUP, purged=purged)
        return purged

    def stats(self) -> Dict[str, Any]:
        """Static configuration. The store offers no way to count records."""
        return {
            "keyPrefix": self.key_prefix,
            "expirationTtl": self.ttl_seconds,
            "retryWindowMs": self.retry_window_ms,
            "autoExpiry": True,
            "note": "Expired records are removed by the key-value store",
            "errorPolicies": {op: policy.value for op, policy in self.ERROR_POLICIES.items()},
        }
