from .time import (
    InvalidTimeRange,
    ensure_aware,
    ensure_time_range,
    from_storage,
    js_weekday,
    resolve_timezone,
    session_date,
    to_storage,
    utc_now,
)

__all__ = [
    "InvalidTimeRange",
    "ensure_aware",
    "ensure_time_range",
    "from_storage",
    "js_weekday",
    "resolve_timezone",
    "session_date",
    "to_storage",
    "utc_now",
]
