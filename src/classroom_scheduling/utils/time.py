from __future__ import annotations

from datetime import date, datetime, timezone, tzinfo
from zoneinfo import ZoneInfo


class InvalidTimeRange(ValueError):
    pass


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_timezone(name: str | None) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; aware ones are returned unchanged."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def ensure_time_range(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    start_at = ensure_aware(start)
    end_at = ensure_aware(end)
    if end_at <= start_at:
        raise InvalidTimeRange("End time must be after start time.")
    return start_at, end_at


def js_weekday(value: datetime | date) -> int:
    """Weekday number with 0=Sunday .. 6=Saturday."""
    return (value.weekday() + 1) % 7


def to_storage(value: datetime) -> str:
    return ensure_aware(value).astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_storage(value: datetime | str | None) -> datetime | None:
    if value is None:
        return None
    return ensure_aware(_coerce_datetime(value))


def session_date(value: datetime, tz: tzinfo | None = None) -> str:
    return ensure_aware(value).astimezone(tz or timezone.utc).date().isoformat()


def _coerce_datetime(value: datetime | str) -> datetime:
    if isinstance(value, datetime):
        return value

    if isinstance(value, str):
        candidate = value.strip().replace(" ", "T", 1)
        try:
            return datetime.fromisoformat(candidate)
        except ValueError:
            for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M:%S.%f"):
                try:
                    return datetime.strptime(value, fmt)
                except ValueError:
                    continue

    raise ValueError(f"Unsupported datetime value: {value!r}")
