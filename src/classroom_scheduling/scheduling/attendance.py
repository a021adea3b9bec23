"""Time-weighted attendance classification.

Only the part of a presence interval that falls inside the scheduled window is
credited, so early arrivals and forgotten disconnects neither inflate nor
deflate a student's time. A manual status, once recorded, always wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Sequence

from classroom_scheduling.models import AttendanceSummary, PresenceEvent

UPCOMING = "upcoming"
IN_PROGRESS = "in-progress"
LATE = "late"
PRESENT = "present"
PARTIAL = "partial"
ABSENT = "absent"
EXCUSED = "excused"

MANUAL_STATUSES = frozenset({PRESENT, PARTIAL, LATE, EXCUSED, ABSENT})

_PRESENT_BUCKET = frozenset({PRESENT, EXCUSED})
_PARTIAL_BUCKET = frozenset({PARTIAL, LATE})


@dataclass(slots=True, frozen=True)
class AttendancePolicy:
    present_ratio: float = 0.5
    partial_ratio: float = 0.10
    partial_min_seconds: int = 120


def clamped_overlap_seconds(
    joined_at: datetime,
    left_at: datetime,
    window_start: datetime,
    window_end: datetime,
) -> float:
    start = max(joined_at, window_start)
    end = min(left_at, window_end)
    return max(0.0, (end - start).total_seconds())


def accumulated_seconds(
    events: Iterable[PresenceEvent],
    window_start: datetime,
    window_end: datetime,
    now: datetime,
) -> float:
    """Seconds of presence inside the window; open events count up to ``now``.

    Intervals are merged before summing, so the total never exceeds the
    scheduled duration even if stored events overlap each other.
    """
    clamped: list[tuple[datetime, datetime]] = []
    for event in events:
        left_at = event.left_at if event.left_at is not None else now
        start = max(event.joined_at, window_start)
        end = min(left_at, window_end)
        if end > start:
            clamped.append((start, end))

    total = 0.0
    current_start: Optional[datetime] = None
    current_end: Optional[datetime] = None
    for start, end in sorted(clamped):
        if current_end is None or start > current_end:
            if current_end is not None:
                total += (current_end - current_start).total_seconds()
            current_start, current_end = start, end
        elif end > current_end:
            current_end = end
    if current_end is not None:
        total += (current_end - current_start).total_seconds()
    return total


def is_connected(events: Iterable[PresenceEvent]) -> bool:
    return any(event.is_open and event.manual_status is None for event in events)


def latest_manual(events: Iterable[PresenceEvent]) -> Optional[PresenceEvent]:
    manual = [event for event in events if event.manual_status]
    if not manual:
        return None
    return max(manual, key=lambda event: (event.manual_set_at or event.joined_at, event.id))


def last_seen(events: Iterable[PresenceEvent], now: datetime) -> Optional[datetime]:
    moments = [
        event.left_at if event.left_at is not None else now
        for event in events
        if event.manual_status is None or event.left_at != event.joined_at
    ]
    return max(moments) if moments else None


def classify(
    accumulated: float,
    window_start: datetime,
    window_end: datetime,
    now: datetime,
    connected: bool,
    policy: AttendancePolicy = AttendancePolicy(),
) -> str:
    duration = (window_end - window_start).total_seconds()
    ratio = accumulated / duration if duration > 0 else 0.0

    if ratio >= policy.present_ratio:
        return PRESENT
    if ratio >= policy.partial_ratio or accumulated >= policy.partial_min_seconds:
        return PARTIAL
    if now < window_start:
        return IN_PROGRESS if connected else UPCOMING
    if window_start <= now <= window_end:
        return IN_PROGRESS if connected else LATE
    return ABSENT


def effective_status(
    events: Sequence[PresenceEvent],
    window_start: datetime,
    window_end: datetime,
    now: datetime,
    policy: AttendancePolicy = AttendancePolicy(),
) -> tuple[str, bool]:
    """Return ``(status, is_manual)`` for one student in one schedule entry."""
    manual = latest_manual(events)
    if manual is not None:
        return manual.manual_status, True

    accumulated = accumulated_seconds(events, window_start, window_end, now)
    status = classify(accumulated, window_start, window_end, now, is_connected(events), policy)
    return status, False


def bucket(status: str) -> str:
    if status in _PRESENT_BUCKET:
        return "present"
    if status in _PARTIAL_BUCKET:
        return "partial"
    return "missed"


def summarize(statuses: Iterable[str]) -> AttendanceSummary:
    summary = AttendanceSummary()
    for status in statuses:
        category = bucket(status)
        if category == "present":
            summary.present += 1
        elif category == "partial":
            summary.partial += 1
        else:
            summary.missed += 1
    return summary
