from __future__ import annotations

import sqlite3
from collections import defaultdict
from datetime import datetime
from typing import Callable, Optional

from classroom_scheduling.data import Database
from classroom_scheduling.data.records import (
    SCHEDULE_COLUMNS,
    SESSION_COLUMNS,
    entry_from_row,
    event_from_row,
    fetch_class,
    fetch_entry,
    fetch_events,
)
from classroom_scheduling.errors import AuthorizationError, SchedulingError, ValidationError
from classroom_scheduling.logging import get_logger
from classroom_scheduling.models import (
    CANCELLED,
    STUDENT,
    Actor,
    AttendanceDetail,
    AttendanceReport,
    ClassProgress,
    PresenceEvent,
    ScheduleEntry,
)
from classroom_scheduling.permissions import require_manage_class
from classroom_scheduling.scheduling.attendance import (
    MANUAL_STATUSES,
    AttendancePolicy,
    accumulated_seconds,
    bucket,
    effective_status,
    last_seen,
    summarize,
)
from classroom_scheduling.utils.time import from_storage, resolve_timezone, session_date, to_storage, utc_now

logger = get_logger(__name__)

JOIN = "join"
LEAVE = "leave"
PRESENCE_ACTIONS = frozenset({JOIN, LEAVE})


class NotEnrolledError(AuthorizationError):
    """Raised when a student logs presence for a class they are not enrolled in."""


class AttendanceService:
    """Presence ledger writes and the attendance views derived from it."""

    def __init__(
        self,
        database: Database,
        *,
        clock: Callable[[], datetime] = utc_now,
        policy: AttendancePolicy = AttendancePolicy(),
        timezone: str = "UTC",
    ) -> None:
        self._database = database
        self._clock = clock
        self._policy = policy
        self._tz = resolve_timezone(timezone)

    def log_presence(
        self,
        actor: Actor,
        schedule_id: int,
        action: str,
        now: Optional[datetime] = None,
    ) -> Optional[int]:
        """Record a join or leave signal from the video room.

        Returns the id of the event written, or ``None`` when nothing was
        recorded (non-student callers, or a leave without an open event).
        """
        if action not in PRESENCE_ACTIONS:
            raise ValidationError(f"Unknown presence action: {action!r}")
        if actor.role != STUDENT:
            logger.debug("presence_ignored", schedule_id=schedule_id, user_id=actor.id, role=actor.role)
            return None

        now = now or self._clock()
        try:
            with self._database.connect() as connection:
                entry = fetch_entry(connection, schedule_id)
                class_entity = fetch_class(connection, entry.class_id)
                if not class_entity.has_student(actor.id):
                    raise NotEnrolledError("Not enrolled in this class")

                closed_id = self._close_open_event(connection, schedule_id, actor.id, now)
                if action == LEAVE:
                    event_id = closed_id
                else:
                    cursor = connection.execute(
                        """
                        INSERT INTO class_sessions (
                            schedule_id, student_id, room_name, session_date, joined_at
                        ) VALUES (?, ?, ?, ?, ?)
                        """,
                        (
                            schedule_id,
                            actor.id,
                            entry.room_name,
                            session_date(now, self._tz),
                            to_storage(now),
                        ),
                    )
                    event_id = int(cursor.lastrowid)
        except (SchedulingError, sqlite3.Error) as exc:
            logger.warning(
                "presence_failed",
                schedule_id=schedule_id,
                student_id=actor.id,
                action=action,
                error=str(exc),
            )
            raise

        if action == JOIN:
            logger.info("presence_joined", schedule_id=schedule_id, student_id=actor.id, event_id=event_id)
        elif event_id is not None:
            logger.info("presence_left", schedule_id=schedule_id, student_id=actor.id, event_id=event_id)
        else:
            logger.debug("presence_leave_without_join", schedule_id=schedule_id, student_id=actor.id)
        return event_id

    def update_attendance(
        self,
        actor: Actor,
        schedule_id: int,
        student_id: int,
        status: str,
        now: Optional[datetime] = None,
    ) -> int:
        """Record a manual status; the most recent manual status wins."""
        if status not in MANUAL_STATUSES:
            raise ValidationError(f"Invalid attendance status: {status!r}")

        now = now or self._clock()
        with self._database.connect() as connection:
            entry = fetch_entry(connection, schedule_id)
            class_entity = fetch_class(connection, entry.class_id)
            require_manage_class(actor, class_entity, "update attendance")
            if not class_entity.has_student(student_id):
                raise ValidationError("Student is not enrolled in this class")

            latest = connection.execute(
                """
                SELECT id
                  FROM class_sessions
                 WHERE schedule_id = ?
                   AND student_id = ?
              ORDER BY joined_at DESC, id DESC
                 LIMIT 1
                """,
                (schedule_id, student_id),
            ).fetchone()

            if latest:
                event_id = int(latest["id"])
                connection.execute(
                    """
                    UPDATE class_sessions
                       SET manual_status = ?, manual_set_by = ?, manual_set_at = ?
                     WHERE id = ?
                    """,
                    (status, actor.id, to_storage(now), event_id),
                )
            else:
                # Zero-length marker: carries the status without crediting time.
                cursor = connection.execute(
                    """
                    INSERT INTO class_sessions (
                        schedule_id, student_id, room_name, session_date, joined_at, left_at,
                        duration_seconds, manual_status, manual_set_by, manual_set_at
                    ) VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?, ?)
                    """,
                    (
                        schedule_id,
                        student_id,
                        entry.room_name,
                        session_date(entry.scheduled_start, self._tz),
                        to_storage(now),
                        to_storage(now),
                        status,
                        actor.id,
                        to_storage(now),
                    ),
                )
                event_id = int(cursor.lastrowid)

        logger.info(
            "attendance_overridden",
            schedule_id=schedule_id,
            student_id=student_id,
            status=status,
            set_by=actor.id,
        )
        return event_id

    def get_attendance_details(
        self,
        actor: Actor,
        schedule_id: int,
        now: Optional[datetime] = None,
    ) -> AttendanceReport:
        now = now or self._clock()
        with self._database.connect() as connection:
            entry = fetch_entry(connection, schedule_id)
            class_entity = fetch_class(connection, entry.class_id)
            require_manage_class(actor, class_entity, "view attendance")

            students = connection.execute(
                """
                SELECT u.id, u.email, u.first_name, u.last_name
                  FROM class_students AS cs
            INNER JOIN users AS u ON u.id = cs.student_id
                 WHERE cs.class_id = ?
              ORDER BY LOWER(u.last_name), LOWER(u.first_name), u.id
                """,
                (class_entity.id,),
            ).fetchall()

            events_by_student: dict[int, list[PresenceEvent]] = defaultdict(list)
            for event in fetch_events(connection, schedule_id):
                events_by_student[event.student_id].append(event)

        details: list[AttendanceDetail] = []
        for row in students:
            student_id = int(row["id"])
            events = events_by_student.get(student_id, [])
            status, is_manual = effective_status(
                events, entry.scheduled_start, entry.scheduled_end, now, self._policy
            )
            seconds = accumulated_seconds(events, entry.scheduled_start, entry.scheduled_end, now)
            full_name = " ".join(part for part in (row["first_name"], row["last_name"]) if part)
            details.append(
                AttendanceDetail(
                    student_id=student_id,
                    full_name=full_name or row["email"],
                    email=row["email"],
                    total_minutes=round(seconds / 60),
                    last_seen=last_seen(events, now),
                    status=status,
                    is_manual=is_manual,
                )
            )

        return AttendanceReport(
            schedule_id=schedule_id,
            students=details,
            summary=summarize(detail.status for detail in details),
        )

    def get_student_status(
        self,
        schedule_id: int,
        student_id: int,
        now: Optional[datetime] = None,
    ) -> str:
        now = now or self._clock()
        with self._database.connect() as connection:
            entry = fetch_entry(connection, schedule_id)
            events = fetch_events(connection, schedule_id, student_id)
        status, _ = effective_status(events, entry.scheduled_start, entry.scheduled_end, now, self._policy)
        return status

    def get_student_progress(self, actor: Actor, now: Optional[datetime] = None) -> list[ClassProgress]:
        """Per enrolled class: past sessions and how many of them were attended.

        Cancelled entries are not counted as past sessions.
        """
        now = now or self._clock()
        with self._database.connect() as connection:
            classes = connection.execute(
                """
                SELECT c.id, c.name,
                       cu.title AS curriculum_title,
                       TRIM(t.first_name || ' ' || t.last_name) AS teacher_name
                  FROM class_students AS cs
            INNER JOIN classes AS c ON c.id = cs.class_id
            INNER JOIN curriculums AS cu ON cu.id = c.curriculum_id
            INNER JOIN users AS t ON t.id = c.teacher_id
                 WHERE cs.student_id = ?
                   AND c.is_active = 1
              ORDER BY c.name, c.id
                """,
                (actor.id,),
            ).fetchall()

            progress: list[ClassProgress] = []
            for row in classes:
                entries = self._past_entries(connection, int(row["id"]), now)
                events_by_schedule = self._events_for_student(connection, [item.id for item in entries], actor.id)
                attended = 0
                for item in entries:
                    status, _ = effective_status(
                        events_by_schedule.get(item.id, []),
                        item.scheduled_start,
                        item.scheduled_end,
                        now,
                        self._policy,
                    )
                    if bucket(status) != "missed":
                        attended += 1
                totals = connection.execute(
                    """
                    SELECT COUNT(*) AS total_classes,
                           MIN(CASE WHEN scheduled_start > ? THEN scheduled_start END) AS next_session
                      FROM class_schedule
                     WHERE class_id = ?
                       AND status != ?
                    """,
                    (to_storage(now), int(row["id"]), CANCELLED),
                ).fetchone()
                progress.append(
                    ClassProgress(
                        class_id=int(row["id"]),
                        class_name=row["name"],
                        teacher_name=row["teacher_name"] or "Unknown",
                        curriculum_title=row["curriculum_title"] or "Unknown",
                        total_past_sessions=len(entries),
                        attended_sessions=attended,
                        total_classes=int(totals["total_classes"]),
                        next_session=from_storage(totals["next_session"]),
                    )
                )
        return progress

    @staticmethod
    def _close_open_event(
        connection: sqlite3.Connection,
        schedule_id: int,
        student_id: int,
        now: datetime,
    ) -> Optional[int]:
        row = connection.execute(
            f"""
            SELECT {SESSION_COLUMNS}
              FROM class_sessions
             WHERE schedule_id = ?
               AND student_id = ?
               AND left_at IS NULL
            """,
            (schedule_id, student_id),
        ).fetchone()
        if not row:
            return None

        event = event_from_row(row)
        left_at = max(now, event.joined_at)
        connection.execute(
            "UPDATE class_sessions SET left_at = ?, duration_seconds = ? WHERE id = ?",
            (to_storage(left_at), int((left_at - event.joined_at).total_seconds()), event.id),
        )
        return event.id

    @staticmethod
    def _past_entries(connection: sqlite3.Connection, class_id: int, now: datetime) -> list[ScheduleEntry]:
        rows = connection.execute(
            f"""
            SELECT {SCHEDULE_COLUMNS}
              FROM class_schedule
             WHERE class_id = ?
               AND scheduled_end < ?
               AND status != ?
          ORDER BY scheduled_start
            """,
            (class_id, to_storage(now), CANCELLED),
        ).fetchall()
        return [entry_from_row(row) for row in rows]

    @staticmethod
    def _events_for_student(
        connection: sqlite3.Connection,
        schedule_ids: list[int],
        student_id: int,
    ) -> dict[int, list[PresenceEvent]]:
        grouped: dict[int, list[PresenceEvent]] = defaultdict(list)
        if not schedule_ids:
            return grouped
        placeholders = ", ".join("?" for _ in schedule_ids)
        rows = connection.execute(
            f"""
            SELECT {SESSION_COLUMNS}
              FROM class_sessions
             WHERE student_id = ?
               AND schedule_id IN ({placeholders})
          ORDER BY joined_at, id
            """,
            (student_id, *schedule_ids),
        ).fetchall()
        for row in rows:
            event = event_from_row(row)
            grouped[event.schedule_id].append(event)
        return grouped
