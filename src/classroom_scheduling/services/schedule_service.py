from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Mapping, Optional
from uuid import uuid4

from classroom_scheduling.data import Database
from classroom_scheduling.data.records import (
    entry_from_row,
    fetch_class,
    fetch_curriculum,
    fetch_entry,
    fetch_lesson,
    fetch_series,
    fetch_user,
    find_entry_by_room,
)
from classroom_scheduling.errors import (
    CLASS_SCHEDULE_CONFLICT,
    NotFoundError,
    ScheduleConflict,
    SchedulingError,
    ValidationError,
)
from classroom_scheduling.logging import get_logger
from classroom_scheduling.models import (
    ACTIVE,
    CANCELLED,
    COMPLETED,
    SCHEDULED,
    Actor,
    ClassEntity,
    OperationResult,
    RecurrenceRule,
    ScheduleEntry,
    ScheduleFilters,
    ScheduleItem,
    SeriesCreated,
    SessionStatus,
)
from classroom_scheduling.models.scheduling import DEFAULT_CURRICULUM_COLOR, SCHEDULE_STATUSES
from classroom_scheduling.permissions import ADMIN_ROLES, TEACHING_ROLES, require_manage_class
from classroom_scheduling.scheduling import conflicts
from classroom_scheduling.scheduling.recurrence import DEFAULT_OCCURRENCES, align_anchor, expand, parse_rule
from classroom_scheduling.scheduling.session_gate import JoinWindow, can_join_now
from classroom_scheduling.utils.time import (
    InvalidTimeRange,
    ensure_time_range,
    resolve_timezone,
    to_storage,
    utc_now,
)

logger = get_logger(__name__)

_UNSET: Any = object()

_PATCHABLE_COLUMNS = frozenset(
    {
        "lesson_id",
        "title",
        "description",
        "scheduled_start",
        "scheduled_end",
        "status",
        "is_live",
        "completed_at",
    }
)


class ScheduleService:
    """Schedule entries and recurring series for classes.

    Every public mutation runs in a single ``Database.connect()`` transaction:
    validation, conflict checks and the write they guard see one snapshot.
    """

    def __init__(
        self,
        database: Database,
        *,
        clock: Callable[[], datetime] = utc_now,
        timezone: str = "UTC",
        default_occurrences: int = DEFAULT_OCCURRENCES,
        join_window: JoinWindow = JoinWindow(),
    ) -> None:
        self._database = database
        self._clock = clock
        self._tz = resolve_timezone(timezone)
        self._default_occurrences = default_occurrences
        self._join_window = join_window

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get(self, schedule_id: int) -> ScheduleEntry:
        with self._database.connect() as connection:
            return fetch_entry(connection, schedule_id)

    def get_by_room_name(self, room_name: str) -> Optional[ScheduleEntry]:
        with self._database.connect() as connection:
            return find_entry_by_room(connection, room_name)

    def get_series(self, schedule_id: int) -> list[ScheduleEntry]:
        with self._database.connect() as connection:
            entry = fetch_entry(connection, schedule_id)
            if entry.series_id is None:
                return [entry]
            return fetch_series(connection, entry.series_id)

    def get_with_details(self, schedule_id: int) -> Optional[dict]:
        with self._database.connect() as connection:
            try:
                entry = fetch_entry(connection, schedule_id)
                class_entity = fetch_class(connection, entry.class_id)
            except NotFoundError:
                return None

            lesson = None
            if entry.lesson_id is not None:
                try:
                    lesson = fetch_lesson(connection, entry.lesson_id)
                except NotFoundError:
                    lesson = None
            curriculum = fetch_curriculum(connection, class_entity.curriculum_id)
            teacher = fetch_user(connection, class_entity.teacher_id)

        return {
            "schedule": entry,
            "lesson": (
                {"id": lesson.id, "title": lesson.title, "description": lesson.description}
                if lesson
                else None
            ),
            "class": {
                "id": class_entity.id,
                "name": class_entity.name,
                "student_count": len(class_entity.students),
            },
            "curriculum": {
                "id": curriculum.id,
                "title": curriculum.title,
                "code": curriculum.code,
                "color": curriculum.color or DEFAULT_CURRICULUM_COLOR,
            },
            "teacher": {
                "id": teacher.id,
                "full_name": teacher.full_name,
                "email": teacher.email,
            },
        }

    def get_used_lessons(self, class_id: int) -> list[int]:
        with self._database.connect() as connection:
            rows = connection.execute(
                """
                SELECT DISTINCT lesson_id
                  FROM class_schedule
                 WHERE class_id = ?
                   AND lesson_id IS NOT NULL
              ORDER BY lesson_id
                """,
                (class_id,),
            ).fetchall()
        return [int(row["lesson_id"]) for row in rows]

    def get_my_schedule(self, actor: Actor, filters: Optional[ScheduleFilters] = None) -> list[ScheduleItem]:
        """Schedule visible to ``actor``: every active class for admins, taught
        classes for teachers and tutors, enrolled classes for students."""
        filters = filters or ScheduleFilters()

        query_parts = [
            "SELECT",
            "    s.id, s.class_id, s.lesson_id, s.title, s.description,",
            "    s.scheduled_start, s.scheduled_end, s.room_name, s.is_live, s.status,",
            "    s.is_recurring, s.recurrence_parent_id, s.recurrence_rule,",
            "    s.completed_at, s.created_at, s.created_by,",
            "    c.name AS class_name, c.curriculum_id,",
            "    cu.title AS curriculum_title, cu.color AS curriculum_color,",
            "    l.title AS lesson_title, l.description AS lesson_description,",
            "    TRIM(t.first_name || ' ' || t.last_name) AS teacher_name",
            "FROM class_schedule AS s",
            "INNER JOIN classes AS c ON c.id = s.class_id",
            "INNER JOIN curriculums AS cu ON cu.id = c.curriculum_id",
            "INNER JOIN users AS t ON t.id = c.teacher_id",
            "LEFT JOIN lessons AS l ON l.id = s.lesson_id",
        ]

        conditions: list[str] = ["c.is_active = 1"]
        params: list[Any] = []

        if actor.role in ADMIN_ROLES:
            if filters.teacher_id is not None:
                conditions.append("c.teacher_id = ?")
                params.append(filters.teacher_id)
        elif actor.role in TEACHING_ROLES:
            conditions.append("(c.teacher_id = ? OR c.tutor_id = ?)")
            params.extend([actor.id, actor.id])
        else:
            conditions.append(
                "EXISTS (SELECT 1 FROM class_students AS cs WHERE cs.class_id = c.id AND cs.student_id = ?)"
            )
            params.append(actor.id)

        if filters.start_from is not None:
            conditions.append("s.scheduled_start >= ?")
            params.append(to_storage(filters.start_from))
        if filters.start_to is not None:
            conditions.append("s.scheduled_start <= ?")
            params.append(to_storage(filters.start_to))
        if filters.status is not None:
            conditions.append("s.status = ?")
            params.append(filters.status)

        query_parts.append("WHERE " + " AND ".join(conditions))
        query_parts.append("ORDER BY s.scheduled_start ASC, s.id ASC")

        with self._database.connect() as connection:
            rows = connection.execute("\n".join(query_parts), tuple(params)).fetchall()

        items: list[ScheduleItem] = []
        for row in rows:
            entry = entry_from_row(row)
            items.append(
                ScheduleItem(
                    schedule_id=entry.id,
                    title=row["lesson_title"] or entry.title or "Class Session",
                    description=row["lesson_description"] or entry.description or "",
                    class_id=entry.class_id,
                    class_name=row["class_name"],
                    curriculum_id=int(row["curriculum_id"]),
                    curriculum_title=row["curriculum_title"] or "Unknown",
                    color=row["curriculum_color"] or DEFAULT_CURRICULUM_COLOR,
                    start=entry.scheduled_start,
                    end=entry.scheduled_end,
                    room_name=entry.room_name,
                    is_live=entry.is_live,
                    status=entry.status,
                    lesson_id=entry.lesson_id,
                    is_recurring=entry.is_recurring,
                    recurrence_rule=entry.recurrence_rule,
                    recurrence_parent_id=entry.recurrence_parent_id,
                    teacher_name=row["teacher_name"] or "Unknown",
                )
            )
        return items

    def get_session_status(self, room_name_or_id: str | int, actor: Optional[Actor] = None) -> Optional[SessionStatus]:
        """Resolve by room name first, then by schedule id."""
        with self._database.connect() as connection:
            entry = find_entry_by_room(connection, str(room_name_or_id))
            if entry is None and str(room_name_or_id).isdigit():
                try:
                    entry = fetch_entry(connection, int(room_name_or_id))
                except NotFoundError:
                    entry = None

        if entry is None:
            return None

        now = self._clock()
        return SessionStatus(
            schedule_id=entry.id,
            is_active=self._join_window.contains(entry, now) or entry.status == ACTIVE,
            status=entry.status,
            start=entry.scheduled_start,
            end=entry.scheduled_end,
            room_name=entry.room_name,
            can_join=entry.status in (ACTIVE, SCHEDULED),
            can_join_now=(
                can_join_now(actor.role, entry, now, self._join_window) if actor is not None else None
            ),
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def create_schedule(
        self,
        actor: Actor,
        class_id: int,
        scheduled_start: datetime,
        scheduled_end: datetime,
        *,
        lesson_id: Optional[int] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> int:
        with self._database.connect() as connection:
            class_entity, start, end = self._prepare(
                connection, actor, class_id, lesson_id, scheduled_start, scheduled_end, "create schedules"
            )
            conflicts.validate(
                connection,
                teacher_id=class_entity.teacher_id,
                class_id=class_id,
                proposed_start=start,
                proposed_end=end,
            )

            suffix = f"lesson-{lesson_id}-{_token()}" if lesson_id is not None else _token()
            schedule_id = self._insert_entry(
                connection,
                actor,
                class_id=class_id,
                lesson_id=lesson_id,
                title=title,
                description=description,
                scheduled_start=start,
                scheduled_end=end,
                room_name=f"class-{class_id}-{suffix}",
            )

        logger.info("schedule_created", schedule_id=schedule_id, class_id=class_id, start=start.isoformat())
        return schedule_id

    def schedule_lesson(
        self,
        actor: Actor,
        class_id: int,
        lesson_id: int,
        scheduled_start: datetime,
        scheduled_end: datetime,
    ) -> int:
        return self.create_schedule(actor, class_id, scheduled_start, scheduled_end, lesson_id=lesson_id)

    def create_recurring_schedule(
        self,
        actor: Actor,
        class_id: int,
        scheduled_start: datetime,
        scheduled_end: datetime,
        recurrence: RecurrenceRule | Mapping[str, Any],
        *,
        lesson_id: Optional[int] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
        align_to_weekdays: bool = True,
    ) -> SeriesCreated:
        rule = parse_rule(recurrence)

        with self._database.connect() as connection:
            class_entity, start, end = self._prepare(
                connection, actor, class_id, lesson_id, scheduled_start, scheduled_end, "create schedules"
            )
            start, end = start.astimezone(self._tz), end.astimezone(self._tz)
            if align_to_weekdays:
                start, end = align_anchor(start, end, rule.days_of_week)

            occurrences = expand(start, rule, default_occurrences=self._default_occurrences)
            if not occurrences:
                raise ValidationError("No valid occurrences generated")

            duration = end - start
            windows = [(occurrence, occurrence + duration) for occurrence in occurrences]
            clash = conflicts.find_overlap(windows)
            if clash is not None:
                raise ScheduleConflict(CLASS_SCHEDULE_CONFLICT, class_entity.name, clash[0])

            for window_start, window_end in windows:
                conflicts.validate(
                    connection,
                    teacher_id=class_entity.teacher_id,
                    class_id=class_id,
                    proposed_start=window_start,
                    proposed_end=window_end,
                )

            parent_room = f"class-{class_id}-series-{_token()}"
            parent_id = self._insert_entry(
                connection,
                actor,
                class_id=class_id,
                lesson_id=lesson_id,
                title=title,
                description=description,
                scheduled_start=windows[0][0],
                scheduled_end=windows[0][1],
                room_name=parent_room,
                is_recurring=True,
                recurrence_rule=rule.to_json(),
            )

            child_ids: list[int] = []
            for index, (window_start, window_end) in enumerate(windows[1:], start=1):
                child_ids.append(
                    self._insert_entry(
                        connection,
                        actor,
                        class_id=class_id,
                        lesson_id=lesson_id,
                        title=title,
                        description=description,
                        scheduled_start=window_start,
                        scheduled_end=window_end,
                        room_name=f"{parent_room}-{index}",
                        is_recurring=True,
                        recurrence_parent_id=parent_id,
                    )
                )

        logger.info(
            "series_created",
            parent_id=parent_id,
            class_id=class_id,
            recurrence=rule.type,
            occurrences=len(occurrences),
        )
        return SeriesCreated(parent_id=parent_id, child_ids=tuple(child_ids), total_occurrences=len(occurrences))

    def update_schedule(
        self,
        actor: Actor,
        schedule_id: int,
        *,
        lesson_id: Optional[int] = _UNSET,
        title: Optional[str] = _UNSET,
        description: Optional[str] = _UNSET,
        scheduled_start: Optional[datetime] = None,
        scheduled_end: Optional[datetime] = None,
        status: Optional[str] = None,
        update_series: bool = False,
    ) -> OperationResult:
        """Update one entry, or shift a whole series by the edited instance's delta.

        Series edits never re-expand the rule: each entry keeps its own offset
        and takes the edited instance's duration.
        """
        with self._database.connect() as connection:
            entry = fetch_entry(connection, schedule_id)
            class_entity = fetch_class(connection, entry.class_id)
            require_manage_class(actor, class_entity, "update schedules")

            if lesson_id is not _UNSET and lesson_id is not None:
                self._validate_lesson(connection, class_entity, lesson_id)

            if status is not None:
                if status not in SCHEDULE_STATUSES:
                    raise ValidationError(f"Unknown schedule status: {status!r}")
                if entry.status == CANCELLED and status != CANCELLED:
                    raise ValidationError("Cancelled sessions cannot be reopened.")

            try:
                new_start, new_end = ensure_time_range(
                    scheduled_start or entry.scheduled_start,
                    scheduled_end or entry.scheduled_end,
                )
            except InvalidTimeRange as exc:
                raise ValidationError(str(exc)) from exc

            shift = new_start - entry.scheduled_start
            duration = new_end - new_start
            times_changed = shift != timedelta(0) or duration.total_seconds() != entry.duration_seconds

            metadata: dict[str, Any] = {}
            if title is not _UNSET:
                metadata["title"] = title
            if description is not _UNSET:
                metadata["description"] = description
            if lesson_id is not _UNSET:
                metadata["lesson_id"] = lesson_id

            now = self._clock()

            if update_series and entry.series_id is not None:
                items = fetch_series(connection, entry.series_id)
                series_ids = [item.id for item in items]
                for item in items:
                    patch = {**metadata, **self._status_patch(item, status, now)}
                    item_start = item.scheduled_start + shift
                    item_end = item_start + duration
                    if times_changed and patch.get("status", item.status) != CANCELLED:
                        conflicts.validate(
                            connection,
                            teacher_id=class_entity.teacher_id,
                            class_id=item.class_id,
                            proposed_start=item_start,
                            proposed_end=item_end,
                            exclude_entry_ids=series_ids,
                        )
                    patch["scheduled_start"] = to_storage(item_start)
                    patch["scheduled_end"] = to_storage(item_end)
                    self._patch(connection, item.id, patch)
                result = OperationResult(count=len(items), type="series")
            else:
                patch = {**metadata, **self._status_patch(entry, status, now)}
                if times_changed:
                    if patch.get("status", entry.status) != CANCELLED:
                        conflicts.validate(
                            connection,
                            teacher_id=class_entity.teacher_id,
                            class_id=entry.class_id,
                            proposed_start=new_start,
                            proposed_end=new_end,
                            exclude_entry_ids=[entry.id],
                        )
                    patch["scheduled_start"] = to_storage(new_start)
                    patch["scheduled_end"] = to_storage(new_end)
                self._patch(connection, entry.id, patch)
                result = OperationResult(count=1, type="single")

        logger.info("schedule_updated", schedule_id=schedule_id, updated=result.count, type=result.type)
        return result

    def cancel_schedule(
        self,
        actor: Actor,
        schedule_id: int,
        *,
        cancel_series: bool = False,
        reason: Optional[str] = None,
    ) -> OperationResult:
        """Soft cancellation; rows stay for attendance history."""
        with self._database.connect() as connection:
            entry = fetch_entry(connection, schedule_id)
            class_entity = fetch_class(connection, entry.class_id)
            require_manage_class(actor, class_entity, "cancel schedules")

            if cancel_series and entry.series_id is not None:
                items = fetch_series(connection, entry.series_id)
                kind = "series"
            else:
                items = [entry]
                kind = "single"

            for item in items:
                patch: dict[str, Any] = {"status": CANCELLED}
                if reason:
                    patch["description"] = f"{item.description or ''}\n\nCancellation reason: {reason}"
                self._patch(connection, item.id, patch)

        logger.info("schedule_cancelled", schedule_id=schedule_id, cancelled=len(items), type=kind)
        return OperationResult(count=len(items), type=kind)

    def delete_schedule(
        self,
        actor: Actor,
        schedule_id: int,
        *,
        delete_series: bool = False,
    ) -> OperationResult:
        with self._database.connect() as connection:
            entry = fetch_entry(connection, schedule_id)
            class_entity = fetch_class(connection, entry.class_id)
            require_manage_class(actor, class_entity, "delete schedules")

            # Children cascade with their head, so deleting a head always removes the series.
            if entry.series_id is not None and (delete_series or entry.is_series_head):
                head_id = entry.series_id
                children = connection.execute(
                    "DELETE FROM class_schedule WHERE recurrence_parent_id = ?",
                    (head_id,),
                ).rowcount
                connection.execute("DELETE FROM class_schedule WHERE id = ?", (head_id,))
                result = OperationResult(count=children + 1, type="series")
            else:
                connection.execute("DELETE FROM class_schedule WHERE id = ?", (entry.id,))
                result = OperationResult(count=1, type="single")

        logger.info("schedule_deleted", schedule_id=schedule_id, deleted=result.count, type=result.type)
        return result

    def mark_live(self, room_name: str, is_live: bool, now: Optional[datetime] = None) -> ScheduleEntry:
        """Mirror the video room's host presence onto the entry.

        Idempotent: repeating the same signal writes nothing.
        """
        try:
            with self._database.connect() as connection:
                entry = find_entry_by_room(connection, room_name)
                if entry is None:
                    raise NotFoundError("Schedule not found")

                now = now or self._clock()
                patch: dict[str, Any] = {}
                if entry.is_live != is_live:
                    patch["is_live"] = int(is_live)

                if is_live:
                    # Reopens scheduled or completed sessions; cancelled ones stay cancelled.
                    if entry.status != CANCELLED:
                        if entry.status != ACTIVE:
                            patch["status"] = ACTIVE
                        if entry.completed_at is not None:
                            patch["completed_at"] = None
                elif entry.status == ACTIVE:
                    if now >= entry.scheduled_end:
                        patch["status"] = COMPLETED
                        patch["completed_at"] = to_storage(now)
                    else:
                        patch["status"] = SCHEDULED

                if patch:
                    self._patch(connection, entry.id, patch)
                    entry = fetch_entry(connection, entry.id)
        except SchedulingError as exc:
            logger.warning("mark_live_failed", room_name=room_name, is_live=is_live, error=str(exc))
            raise

        if patch:
            logger.info("room_live", room_name=room_name, is_live=is_live, status=entry.status)
        else:
            logger.debug("room_live_unchanged", room_name=room_name, is_live=is_live)
        return entry

    def reconcile_stale_sessions(
        self,
        rooms_with_participants: Iterable[str],
        now: Optional[datetime] = None,
    ) -> list[str]:
        """Close live entries whose room reports nobody connected.

        Invoked by the external periodic sweep; returns the rooms it closed.
        """
        occupied = set(rooms_with_participants)
        with self._database.connect() as connection:
            rows = connection.execute(
                """
                SELECT room_name
                  FROM class_schedule
                 WHERE is_live = 1
                    OR status = 'active'
              ORDER BY scheduled_start
                """
            ).fetchall()

        stale = [row["room_name"] for row in rows if row["room_name"] not in occupied]
        for room_name in stale:
            self.mark_live(room_name, False, now=now)

        if stale:
            logger.info("stale_sessions_reconciled", rooms=len(stale))
        return stale

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _prepare(
        self,
        connection: sqlite3.Connection,
        actor: Actor,
        class_id: int,
        lesson_id: Optional[int],
        scheduled_start: datetime,
        scheduled_end: datetime,
        action: str,
    ) -> tuple[ClassEntity, datetime, datetime]:
        class_entity = fetch_class(connection, class_id)
        require_manage_class(actor, class_entity, action)

        if lesson_id is not None:
            self._validate_lesson(connection, class_entity, lesson_id)

        try:
            start, end = ensure_time_range(scheduled_start, scheduled_end)
        except InvalidTimeRange as exc:
            raise ValidationError(str(exc)) from exc
        return class_entity, start, end

    @staticmethod
    def _status_patch(entry: ScheduleEntry, status: Optional[str], now: datetime) -> dict[str, Any]:
        """Status columns for one entry; cancelled entries never leave that state."""
        if status is None or (entry.status == CANCELLED and status != CANCELLED):
            return {}
        patch: dict[str, Any] = {"status": status}
        if status == COMPLETED and entry.completed_at is None:
            patch["completed_at"] = to_storage(now)
        return patch

    @staticmethod
    def _validate_lesson(connection: sqlite3.Connection, class_entity: ClassEntity, lesson_id: int) -> None:
        lesson = fetch_lesson(connection, lesson_id)
        if lesson.curriculum_id != class_entity.curriculum_id:
            raise ValidationError("Lesson does not belong to this class's curriculum")

    def _insert_entry(
        self,
        connection: sqlite3.Connection,
        actor: Actor,
        *,
        class_id: int,
        lesson_id: Optional[int],
        title: Optional[str],
        description: Optional[str],
        scheduled_start: datetime,
        scheduled_end: datetime,
        room_name: str,
        is_recurring: bool = False,
        recurrence_parent_id: Optional[int] = None,
        recurrence_rule: Optional[str] = None,
    ) -> int:
        cursor = connection.execute(
            """
            INSERT INTO class_schedule (
                class_id, lesson_id, title, description, scheduled_start, scheduled_end,
                room_name, is_live, status, is_recurring, recurrence_parent_id,
                recurrence_rule, created_at, created_by
            ) VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?, ?, ?, ?)
            """,
            (
                class_id,
                lesson_id,
                title,
                description,
                to_storage(scheduled_start),
                to_storage(scheduled_end),
                room_name,
                SCHEDULED,
                int(is_recurring),
                recurrence_parent_id,
                recurrence_rule,
                to_storage(self._clock()),
                actor.id,
            ),
        )
        return int(cursor.lastrowid)

    @staticmethod
    def _patch(connection: sqlite3.Connection, schedule_id: int, updates: Mapping[str, Any]) -> None:
        if not updates:
            return
        unknown = set(updates) - _PATCHABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unsupported schedule columns: {sorted(unknown)}")

        columns = sorted(updates)
        assignments = ", ".join(f"{column} = ?" for column in columns)
        connection.execute(
            f"UPDATE class_schedule SET {assignments} WHERE id = ?",
            (*[updates[column] for column in columns], schedule_id),
        )


def _token() -> str:
    return uuid4().hex[:12]


__all__ = ["ScheduleService"]
