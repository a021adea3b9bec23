from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, NewType, Optional

SeriesId = NewType("SeriesId", int)

STUDENT = "student"
TEACHER = "teacher"
TUTOR = "tutor"
ADMIN = "admin"
SUPERADMIN = "superadmin"

ROLES = frozenset({STUDENT, TEACHER, TUTOR, ADMIN, SUPERADMIN})

SCHEDULED = "scheduled"
ACTIVE = "active"
COMPLETED = "completed"
CANCELLED = "cancelled"

SCHEDULE_STATUSES = frozenset({SCHEDULED, ACTIVE, COMPLETED, CANCELLED})

RECURRENCE_TYPES = ("daily", "weekly", "biweekly", "monthly")

DEFAULT_CURRICULUM_COLOR = "#3b82f6"


@dataclass(slots=True, frozen=True)
class Actor:
    """The authenticated caller of a core operation."""

    id: int
    role: str


@dataclass(slots=True)
class User:
    id: int
    email: str
    first_name: str
    last_name: str
    role: str
    is_active: bool = True

    @property
    def full_name(self) -> str:
        name = " ".join(part for part in (self.first_name, self.last_name) if part).strip()
        return name if name else self.email

    def as_actor(self) -> Actor:
        return Actor(id=self.id, role=self.role)


@dataclass(slots=True)
class Curriculum:
    id: int
    title: str
    code: Optional[str] = None
    color: Optional[str] = None
    is_active: bool = True


@dataclass(slots=True)
class Lesson:
    id: int
    curriculum_id: int
    title: str
    description: Optional[str] = None
    order: int = 0
    is_active: bool = True


@dataclass(slots=True)
class ClassEntity:
    id: int
    name: str
    teacher_id: int
    curriculum_id: int
    students: frozenset[int] = field(default_factory=frozenset)
    tutor_id: Optional[int] = None
    is_active: bool = True

    def has_student(self, student_id: int) -> bool:
        return student_id in self.students


@dataclass(slots=True, frozen=True)
class RecurrenceRule:
    type: str
    days_of_week: tuple[int, ...] = ()
    end_date: Optional[datetime] = None
    occurrences: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type}
        if self.days_of_week:
            payload["daysOfWeek"] = list(self.days_of_week)
        if self.end_date is not None:
            payload["endDate"] = self.end_date.isoformat()
        if self.occurrences is not None:
            payload["occurrences"] = self.occurrences
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)


@dataclass(slots=True)
class ScheduleEntry:
    id: int
    class_id: int
    scheduled_start: datetime
    scheduled_end: datetime
    room_name: str
    status: str = SCHEDULED
    is_live: bool = False
    lesson_id: Optional[int] = None
    title: Optional[str] = None
    description: Optional[str] = None
    is_recurring: bool = False
    recurrence_parent_id: Optional[int] = None
    recurrence_rule: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    created_by: Optional[int] = None

    @property
    def is_series_head(self) -> bool:
        return self.is_recurring and self.recurrence_parent_id is None

    @property
    def series_id(self) -> Optional[SeriesId]:
        if not self.is_recurring:
            return None
        return SeriesId(self.recurrence_parent_id if self.recurrence_parent_id is not None else self.id)

    @property
    def duration_seconds(self) -> float:
        return (self.scheduled_end - self.scheduled_start).total_seconds()


@dataclass(slots=True)
class PresenceEvent:
    id: int
    schedule_id: int
    student_id: int
    joined_at: datetime
    left_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    room_name: Optional[str] = None
    session_date: Optional[str] = None
    manual_status: Optional[str] = None
    manual_set_by: Optional[int] = None
    manual_set_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.left_at is None


@dataclass(slots=True, frozen=True)
class ScheduleFilters:
    start_from: Optional[datetime] = None
    start_to: Optional[datetime] = None
    status: Optional[str] = None
    teacher_id: Optional[int] = None


@dataclass(slots=True)
class ScheduleItem:
    """A schedule entry hydrated with class, lesson and teacher details."""

    schedule_id: int
    title: str
    description: str
    class_id: int
    class_name: str
    curriculum_id: int
    curriculum_title: str
    color: str
    start: datetime
    end: datetime
    room_name: str
    is_live: bool
    status: str
    lesson_id: Optional[int]
    is_recurring: bool
    recurrence_rule: Optional[str]
    recurrence_parent_id: Optional[int]
    teacher_name: str


@dataclass(slots=True)
class SessionStatus:
    schedule_id: int
    is_active: bool
    status: str
    start: datetime
    end: datetime
    room_name: str
    can_join: bool
    can_join_now: Optional[bool] = None


@dataclass(slots=True, frozen=True)
class SeriesCreated:
    parent_id: int
    child_ids: tuple[int, ...]
    total_occurrences: int


@dataclass(slots=True, frozen=True)
class OperationResult:
    count: int
    type: str


@dataclass(slots=True)
class AttendanceDetail:
    student_id: int
    full_name: str
    email: str
    total_minutes: int
    last_seen: Optional[datetime]
    status: str
    is_manual: bool


@dataclass(slots=True)
class AttendanceSummary:
    present: int = 0
    partial: int = 0
    missed: int = 0

    @property
    def total(self) -> int:
        return self.present + self.partial + self.missed


@dataclass(slots=True)
class AttendanceReport:
    schedule_id: int
    students: list[AttendanceDetail]
    summary: AttendanceSummary


@dataclass(slots=True)
class ClassProgress:
    class_id: int
    class_name: str
    teacher_name: str
    curriculum_title: str
    total_past_sessions: int
    attended_sessions: int
    total_classes: int = 0
    next_session: Optional[datetime] = None

    @property
    def progress(self) -> int:
        if self.total_past_sessions == 0:
            return 0
        return round(self.attended_sessions / self.total_past_sessions * 100)
