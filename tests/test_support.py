"""
Unit tests for time utilities, the event sink and the purge scheduler.
"""

import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from message_tracker.infrastructure import scheduler as scheduler_module
from message_tracker.infrastructure.observability import DedupEvent, LoggingEventSink
from message_tracker.infrastructure.redis_kv_store import RedisKeyValueStore
from message_tracker.utils.time import (
    epoch_millis,
    from_epoch_millis,
    parse_iso,
    to_iso,
    to_utc,
)


class TestTimeUtils:
    """Tests for epoch and ISO conversions."""

    def test_epoch_millis_is_exact(self):
        dt = datetime(2024, 5, 1, 8, 30, 0, 123999, tzinfo=timezone.utc)

        assert epoch_millis(dt) == 1714552200123

    def test_to_iso_uses_milliseconds_and_z(self):
        assert to_iso(from_epoch_millis(1714552200123)) == "2024-05-01T08:30:00.123Z"

    def test_parse_iso_round_trip(self):
        assert epoch_millis(parse_iso("2024-05-01T08:30:00.123Z")) == 1714552200123

    def test_parse_iso_offset(self):
        parsed = parse_iso("2024-05-01T13:30:00+05:00")

        assert parsed == datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)

    def test_parse_iso_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_iso("yesterday")

    def test_to_utc_assumes_naive_is_utc(self):
        naive = datetime(2024, 5, 1, 8, 30)
        aware = datetime(2024, 5, 1, 10, 30, tzinfo=timezone(timedelta(hours=2)))

        assert to_utc(naive) == datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)
        assert to_utc(aware) == to_utc(naive)


class TestLoggingEventSink:
    """Tests for the logging-backed event sink."""

    def test_levels_and_message(self, caplog):
        sink = LoggingEventSink()

        with caplog.at_level(logging.DEBUG, logger="message_tracker.dedup"):
            sink.emit(DedupEvent.EMPTY_ID, operation="is_processed")
            sink.emit(DedupEvent.DUPLICATE, "msg-1", processed_at="2024-05-01T08:30:00.123Z")

        assert caplog.records[0].levelno == logging.WARNING
        assert "[empty_id] operation=is_processed" in caplog.records[0].getMessage()
        assert caplog.records[1].levelno == logging.INFO
        assert "msg_id=msg-1" in caplog.records[1].getMessage()

    def test_store_error_includes_traceback(self, caplog):
        sink = LoggingEventSink()
        try:
            raise ConnectionError("store unavailable")
        except ConnectionError as e:
            error = e

        with caplog.at_level(logging.ERROR, logger="message_tracker.dedup"):
            sink.emit(DedupEvent.STORE_ERROR, "msg-1", error, operation="mark_processed")

        record = caplog.records[0]
        assert record.levelno == logging.ERROR
        assert record.exc_info[1] is error
        assert "store unavailable" in record.getMessage()

    def test_disabled_level_is_skipped(self):
        log = MagicMock()
        log.isEnabledFor.return_value = False

        LoggingEventSink(log).emit(DedupEvent.LOOKUP_MISS, "msg-1")

        log.log.assert_not_called()


class TestPurgeScheduler:
    """Tests for the purge job registration."""

    @pytest.fixture
    def mock_scheduler(self):
        sched = MagicMock()
        with patch.object(scheduler_module, "get_scheduler", return_value=sched):
            yield sched

    def test_schedules_purge_for_sql_like_store(self, tracker, mock_scheduler):
        assert scheduler_module.schedule_purge(tracker, interval_minutes=5) is True

        mock_scheduler.add_job.assert_called_once()
        kwargs = mock_scheduler.add_job.call_args.kwargs
        assert kwargs["id"] == scheduler_module.PURGE_JOB_ID
        assert kwargs["replace_existing"] is True
        assert kwargs["kwargs"] == {"tracker": tracker}

    def test_skips_store_with_native_expiry(self, mock_scheduler):
        tracker = MagicMock()
        tracker.store = RedisKeyValueStore(AsyncMock())

        assert scheduler_module.schedule_purge(tracker) is False
        mock_scheduler.add_job.assert_not_called()

    @pytest.mark.asyncio
    async def test_purge_job_delegates_to_tracker(self):
        tracker = MagicMock()
        tracker.cleanup_expired_records = AsyncMock(return_value=3)

        assert await scheduler_module.purge_expired_records(tracker) == 3
        tracker.cleanup_expired_records.assert_awaited_once()
