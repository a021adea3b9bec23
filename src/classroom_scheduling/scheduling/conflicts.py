from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Collection, Iterable, Optional

from classroom_scheduling.errors import (
    CLASS_SCHEDULE_CONFLICT,
    TEACHER_SCHEDULE_CONFLICT,
    ScheduleConflict,
)
from classroom_scheduling.utils.time import from_storage, to_storage


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open interval test; windows that only touch at a boundary do not overlap."""
    return start_a < end_b and end_a > start_b


def find_overlap(windows: Iterable[tuple[datetime, datetime]]) -> Optional[tuple[datetime, datetime]]:
    """Return the first window that overlaps its predecessor, if any."""
    ordered = sorted(windows)
    for previous, current in zip(ordered, ordered[1:]):
        if overlaps(previous[0], previous[1], current[0], current[1]):
            return current
    return None


def validate(
    connection: sqlite3.Connection,
    *,
    teacher_id: int,
    class_id: int,
    proposed_start: datetime,
    proposed_end: datetime,
    exclude_entry_ids: Collection[int] = (),
) -> None:
    """Raise ScheduleConflict when the window overlaps a non-cancelled entry.

    The class-level check runs first, then every class taught by the same
    teacher is checked so a teacher is never double-booked.
    """
    row = _first_overlap(
        connection,
        "s.class_id = ?",
        class_id,
        proposed_start,
        proposed_end,
        exclude_entry_ids,
    )
    if row is not None:
        raise ScheduleConflict(
            CLASS_SCHEDULE_CONFLICT,
            row["class_name"],
            from_storage(row["scheduled_start"]),
            schedule_id=int(row["id"]),
        )

    row = _first_overlap(
        connection,
        "c.teacher_id = ?",
        teacher_id,
        proposed_start,
        proposed_end,
        exclude_entry_ids,
    )
    if row is not None:
        raise ScheduleConflict(
            TEACHER_SCHEDULE_CONFLICT,
            row["class_name"],
            from_storage(row["scheduled_start"]),
            schedule_id=int(row["id"]),
        )


def _first_overlap(
    connection: sqlite3.Connection,
    scope_clause: str,
    scope_value: int,
    proposed_start: datetime,
    proposed_end: datetime,
    exclude_entry_ids: Collection[int],
) -> Optional[sqlite3.Row]:
    query_parts = [
        "SELECT s.id, s.scheduled_start, c.name AS class_name",
        "  FROM class_schedule AS s",
        "  JOIN classes AS c ON c.id = s.class_id",
        f" WHERE {scope_clause}",
        "   AND s.status <> 'cancelled'",
        "   AND s.scheduled_start < ?",
        "   AND s.scheduled_end > ?",
    ]
    params: list[object] = [scope_value, to_storage(proposed_end), to_storage(proposed_start)]

    excluded = [int(entry_id) for entry_id in exclude_entry_ids]
    if excluded:
        placeholders = ", ".join(["?"] * len(excluded))
        query_parts.append(f"   AND s.id NOT IN ({placeholders})")
        params.extend(excluded)

    query_parts.append(" ORDER BY s.scheduled_start, s.id")
    query_parts.append(" LIMIT 1")

    return connection.execute("\n".join(query_parts), tuple(params)).fetchone()
