"""
Structured events emitted by the dedup tracker.

The tracker reports what happened through an EventSink instead of logging
directly; the default sink forwards events to the standard logging module.
"""

import logging
from enum import Enum
from typing import Any, Optional, Protocol

logger = logging.getLogger("message_tracker.dedup")


class DedupEvent(str, Enum):
    """Events the tracker can report."""
    EMPTY_ID = "empty_id"
    LOOKUP_MISS = "lookup_miss"
    DUPLICATE = "duplicate"
    RETRY_ELIGIBLE = "retry_eligible"
    MARKED = "marked"
    RESERVED_METADATA = "reserved_metadata"
    CLAIMED = "claimed"
    CLAIM_UNSUPPORTED = "claim_unsupported"
    REMOVED = "removed"
    CLEARED = "cleared"
    CLEANUP = "cleanup"
    STORE_ERROR = "store_error"
    BATCH_ERROR = "batch_error"


class EventSink(Protocol):
    """Receiver for tracker events."""

    def emit(
        self,
        event: DedupEvent,
        msg_id: Optional[str] = None,
        error: Optional[BaseException] = None,
        **fields: Any,
    ) -> None:
        ...


EVENT_LEVELS = {
    DedupEvent.EMPTY_ID: logging.WARNING,
    DedupEvent.LOOKUP_MISS: logging.DEBUG,
    DedupEvent.DUPLICATE: logging.INFO,
    DedupEvent.RETRY_ELIGIBLE: logging.INFO,
    DedupEvent.MARKED: logging.INFO,
    DedupEvent.RESERVED_METADATA: logging.WARNING,
    DedupEvent.CLAIMED: logging.INFO,
    DedupEvent.CLAIM_UNSUPPORTED: logging.WARNING,
    DedupEvent.REMOVED: logging.INFO,
    DedupEvent.CLEARED: logging.INFO,
    DedupEvent.CLEANUP: logging.INFO,
    DedupEvent.STORE_ERROR: logging.ERROR,
    DedupEvent.BATCH_ERROR: logging.ERROR,
}


class LoggingEventSink:
    """EventSink that writes one log line per event."""

    def __init__(self, log: logging.Logger = logger):
        self.log = log

    def emit(
        self,
        event: DedupEvent,
        msg_id: Optional[str] = None,
        error: Optional[BaseException] = None,
        **fields: Any,
    ) -> None:
        level = EVENT_LEVELS.get(event, logging.INFO)
        if not self.log.isEnabledFor(level):
            return

        message = f"[{event.value}]"
        if msg_id:
            message += f" msg_id={msg_id}"
        for name, value in fields.items():
            message += f" {name}={value}"
        if error is not None:
            message += f" error={error!r}"

        self.log.log(
            level,
            message,
            exc_info=(type(error), error, error.__traceback__) if error is not None else None,
        )
