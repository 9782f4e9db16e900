"""Tests for datetime helper utilities and record datetime handling."""
from datetime import UTC, datetime, timedelta, timezone

from blockguess.models import LogEvent
from blockguess.models.base import serialize_datetime_utc
from blockguess.utils.datetime_helpers import ensure_utc, utc_now


def test_ensure_utc_none_returns_none():
    """The helper should gracefully handle ``None`` inputs."""

    assert ensure_utc(None) is None


def test_ensure_utc_attaches_timezone_to_naive_datetime():
    """Naive datetimes should be marked as UTC without adjusting the clock."""

    naive = datetime(2024, 5, 1, 12, 30, 0)

    result = ensure_utc(naive)

    assert result.tzinfo is UTC
    assert result.replace(tzinfo=None) == naive


def test_ensure_utc_converts_from_other_timezones_to_utc():
    """Timezone-aware datetimes not already UTC should be converted."""

    eastern = timezone(timedelta(hours=-4))
    aware = datetime(2024, 5, 1, 8, 0, tzinfo=eastern)

    result = ensure_utc(aware)

    assert result.tzinfo is UTC
    assert result.hour == 12
    assert result.replace(tzinfo=None) == datetime(2024, 5, 1, 12, 0)


def test_utc_now_is_aware():
    assert utc_now().tzinfo is UTC


def test_records_store_naive_datetimes_as_utc():
    """Naive timestamps on records are interpreted as UTC."""

    entry = LogEvent(event_type="round_created", details="x", timestamp=datetime(2024, 5, 1, 12, 0))

    assert entry.timestamp.tzinfo is UTC


def test_record_serialization_uses_z_suffix():
    eastern = timezone(timedelta(hours=-4))
    entry = LogEvent(event_type="round_created", details="x", timestamp=datetime(2024, 5, 1, 8, 0, tzinfo=eastern))

    assert entry.model_dump()["timestamp"] == "2024-05-01T12:00:00Z"
    assert '"timestamp":"2024-05-01T12:00:00Z"' in entry.model_dump_json()


def test_serialize_datetime_utc_naive():
    assert serialize_datetime_utc(datetime(2024, 5, 1, 12, 0)) == "2024-05-01T12:00:00Z"
