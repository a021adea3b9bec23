from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from classroom_scheduling.utils import (
    InvalidTimeRange,
    ensure_time_range,
    from_storage,
    js_weekday,
    resolve_timezone,
    session_date,
    to_storage,
)


def test_js_weekday_starts_on_sunday():
    assert js_weekday(date(2025, 10, 5)) == 0
    assert js_weekday(datetime(2025, 10, 6, 10, 0)) == 1
    assert js_weekday(date(2025, 10, 11)) == 6


def test_storage_format_sorts_chronologically():
    helsinki = ZoneInfo("Europe/Helsinki")
    earlier = datetime(2025, 10, 6, 12, 0, tzinfo=helsinki)
    later = datetime(2025, 10, 6, 10, 0, tzinfo=timezone.utc)

    assert to_storage(earlier) < to_storage(later)
    assert to_storage(later) == "2025-10-06T10:00:00.000000+00:00"
    assert from_storage(to_storage(earlier)) == earlier


def test_from_storage_accepts_sqlite_timestamps():
    assert from_storage("2025-10-02 12:00:00") == datetime(2025, 10, 2, 12, 0, tzinfo=timezone.utc)
    assert from_storage(None) is None


def test_naive_values_are_treated_as_utc():
    start, end = ensure_time_range(datetime(2025, 10, 6, 10), datetime(2025, 10, 6, 11))

    assert start.tzinfo is timezone.utc
    assert end - start == timedelta(hours=1)


def test_time_range_must_be_positive():
    with pytest.raises(InvalidTimeRange):
        ensure_time_range(datetime(2025, 10, 6, 11), datetime(2025, 10, 6, 11))


def test_session_date_uses_scheduling_timezone():
    late_evening = datetime(2025, 10, 6, 22, 30, tzinfo=timezone.utc)

    assert session_date(late_evening) == "2025-10-06"
    assert session_date(late_evening, resolve_timezone("Europe/Helsinki")) == "2025-10-07"
    assert resolve_timezone("UTC") is timezone.utc
