"""Row mapping and lookups shared by the services.

Every helper takes the caller's open connection so lookups run inside the
caller's transaction.
"""

from __future__ import annotations

import sqlite3
from typing import Optional

from classroom_scheduling.errors import NotFoundError
from classroom_scheduling.models import (
    ClassEntity,
    Curriculum,
    Lesson,
    PresenceEvent,
    ScheduleEntry,
    User,
)
from classroom_scheduling.utils.time import from_storage

SCHEDULE_COLUMNS = """
    id, class_id, lesson_id, title, description, scheduled_start, scheduled_end,
    room_name, is_live, status, is_recurring, recurrence_parent_id,
    recurrence_rule, completed_at, created_at, created_by
"""

SESSION_COLUMNS = """
    id, schedule_id, student_id, room_name, session_date, joined_at, left_at,
    duration_seconds, manual_status, manual_set_by, manual_set_at
"""


def entry_from_row(row: sqlite3.Row) -> ScheduleEntry:
    return ScheduleEntry(
        id=int(row["id"]),
        class_id=int(row["class_id"]),
        lesson_id=int(row["lesson_id"]) if row["lesson_id"] is not None else None,
        title=row["title"],
        description=row["description"],
        scheduled_start=from_storage(row["scheduled_start"]),
        scheduled_end=from_storage(row["scheduled_end"]),
        room_name=row["room_name"],
        is_live=bool(row["is_live"]),
        status=row["status"],
        is_recurring=bool(row["is_recurring"]),
        recurrence_parent_id=(
            int(row["recurrence_parent_id"]) if row["recurrence_parent_id"] is not None else None
        ),
        recurrence_rule=row["recurrence_rule"],
        completed_at=from_storage(row["completed_at"]),
        created_at=from_storage(row["created_at"]),
        created_by=int(row["created_by"]) if row["created_by"] is not None else None,
    )


def event_from_row(row: sqlite3.Row) -> PresenceEvent:
    return PresenceEvent(
        id=int(row["id"]),
        schedule_id=int(row["schedule_id"]),
        student_id=int(row["student_id"]),
        room_name=row["room_name"],
        session_date=row["session_date"],
        joined_at=from_storage(row["joined_at"]),
        left_at=from_storage(row["left_at"]),
        duration_seconds=int(row["duration_seconds"]) if row["duration_seconds"] is not None else None,
        manual_status=row["manual_status"],
        manual_set_by=int(row["manual_set_by"]) if row["manual_set_by"] is not None else None,
        manual_set_at=from_storage(row["manual_set_at"]),
    )


def user_from_row(row: sqlite3.Row) -> User:
    return User(
        id=int(row["id"]),
        email=row["email"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        role=row["role"],
        is_active=bool(row["is_active"]),
    )


def fetch_entry(connection: sqlite3.Connection, schedule_id: int) -> ScheduleEntry:
    row = connection.execute(
        f"SELECT {SCHEDULE_COLUMNS} FROM class_schedule WHERE id = ?",
        (schedule_id,),
    ).fetchone()
    if not row:
        raise NotFoundError("Schedule not found")
    return entry_from_row(row)


def find_entry_by_room(connection: sqlite3.Connection, room_name: str) -> Optional[ScheduleEntry]:
    row = connection.execute(
        f"SELECT {SCHEDULE_COLUMNS} FROM class_schedule WHERE room_name = ?",
        (room_name,),
    ).fetchone()
    return entry_from_row(row) if row else None


def fetch_series(connection: sqlite3.Connection, head_id: int) -> list[ScheduleEntry]:
    """Head first, then children in start order."""
    rows = connection.execute(
        f"""
        SELECT {SCHEDULE_COLUMNS}
          FROM class_schedule
         WHERE id = ? OR recurrence_parent_id = ?
      ORDER BY CASE WHEN id = ? THEN 0 ELSE 1 END, scheduled_start, id
        """,
        (head_id, head_id, head_id),
    ).fetchall()
    return [entry_from_row(row) for row in rows]


def fetch_class(connection: sqlite3.Connection, class_id: int) -> ClassEntity:
    row = connection.execute(
        """
        SELECT id, name, teacher_id, tutor_id, curriculum_id, is_active
          FROM classes
         WHERE id = ?
        """,
        (class_id,),
    ).fetchone()
    if not row:
        raise NotFoundError("Class not found")

    roster = connection.execute(
        "SELECT student_id FROM class_students WHERE class_id = ?",
        (class_id,),
    ).fetchall()

    return ClassEntity(
        id=int(row["id"]),
        name=row["name"],
        teacher_id=int(row["teacher_id"]),
        tutor_id=int(row["tutor_id"]) if row["tutor_id"] is not None else None,
        curriculum_id=int(row["curriculum_id"]),
        students=frozenset(int(item["student_id"]) for item in roster),
        is_active=bool(row["is_active"]),
    )


def fetch_user(connection: sqlite3.Connection, user_id: int) -> User:
    row = connection.execute(
        "SELECT id, email, first_name, last_name, role, is_active FROM users WHERE id = ?",
        (user_id,),
    ).fetchone()
    if not row:
        raise NotFoundError("User not found")
    return user_from_row(row)


def fetch_lesson(connection: sqlite3.Connection, lesson_id: int) -> Lesson:
    row = connection.execute(
        """
        SELECT id, curriculum_id, title, description, lesson_order, is_active
          FROM lessons
         WHERE id = ?
        """,
        (lesson_id,),
    ).fetchone()
    if not row:
        raise NotFoundError("Lesson not found")
    return Lesson(
        id=int(row["id"]),
        curriculum_id=int(row["curriculum_id"]),
        title=row["title"],
        description=row["description"],
        order=int(row["lesson_order"]),
        is_active=bool(row["is_active"]),
    )


def fetch_curriculum(connection: sqlite3.Connection, curriculum_id: int) -> Curriculum:
    row = connection.execute(
        "SELECT id, title, code, color, is_active FROM curriculums WHERE id = ?",
        (curriculum_id,),
    ).fetchone()
    if not row:
        raise NotFoundError("Curriculum not found")
    return Curriculum(
        id=int(row["id"]),
        title=row["title"],
        code=row["code"],
        color=row["color"],
        is_active=bool(row["is_active"]),
    )


def fetch_events(connection: sqlite3.Connection, schedule_id: int, student_id: Optional[int] = None) -> list[PresenceEvent]:
    query = f"SELECT {SESSION_COLUMNS} FROM class_sessions WHERE schedule_id = ?"
    params: list[int] = [schedule_id]
    if student_id is not None:
        query += " AND student_id = ?"
        params.append(student_id)
    query += " ORDER BY joined_at, id"
    rows = connection.execute(query, tuple(params)).fetchall()
    return [event_from_row(row) for row in rows]
