from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from classroom_scheduling.data import Database
from classroom_scheduling.models import ADMIN, STUDENT, TEACHER, TUTOR, Actor
from classroom_scheduling.services import AttendanceService, DirectoryService, ScheduleService

# Wednesday morning, before any of the sessions the tests book.
NOW = datetime(2025, 10, 1, 8, 0, tzinfo=timezone.utc)


def at(day: int, hour: int, minute: int = 0, month: int = 10, year: int = 2025) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, value: datetime) -> None:
        self.now = value

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class Seed:
    admin: Actor
    teacher: Actor
    other_teacher: Actor
    tutor: Actor
    student: Actor
    other_student: Actor
    curriculum_id: int
    lesson_id: int
    foreign_lesson_id: int
    class_id: int
    sibling_class_id: int
    other_class_id: int


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def database(tmp_path: Path) -> Database:
    database = Database(tmp_path / "scheduling.db")
    database.initialize()
    return database


@pytest.fixture
def directory(database: Database) -> DirectoryService:
    return DirectoryService(database)


@pytest.fixture
def schedules(database: Database, clock: FrozenClock) -> ScheduleService:
    return ScheduleService(database, clock=clock)


@pytest.fixture
def attendance(database: Database, clock: FrozenClock) -> AttendanceService:
    return AttendanceService(database, clock=clock)


@pytest.fixture
def seed(directory: DirectoryService) -> Seed:
    admin = Actor(directory.create_user("admin@school.test", ADMIN, first_name="Ada", last_name="Admin"), ADMIN)
    teacher = Actor(
        directory.create_user("teacher@school.test", TEACHER, first_name="Tom", last_name="Teacher"), TEACHER
    )
    other_teacher = Actor(
        directory.create_user("other@school.test", TEACHER, first_name="Olga", last_name="Other"), TEACHER
    )
    tutor = Actor(directory.create_user("tutor@school.test", TUTOR, first_name="Tia", last_name="Tutor"), TUTOR)
    student = Actor(
        directory.create_user("student@school.test", STUDENT, first_name="Sam", last_name="Student"), STUDENT
    )
    other_student = Actor(
        directory.create_user("bea@school.test", STUDENT, first_name="Bea", last_name="Another"), STUDENT
    )

    curriculum_id = directory.create_curriculum(admin, "Mathematics", code="MATH", color="#ff0000")
    other_curriculum_id = directory.create_curriculum(admin, "Physics", code="PHYS")
    lesson_id = directory.create_lesson(admin, curriculum_id, "Fractions")
    foreign_lesson_id = directory.create_lesson(admin, other_curriculum_id, "Forces")

    class_id = directory.create_class(
        admin,
        "Math 7A",
        curriculum_id=curriculum_id,
        teacher_id=teacher.id,
        tutor_id=tutor.id,
        students=[student.id, other_student.id],
    )
    sibling_class_id = directory.create_class(
        admin,
        "Math 7B",
        curriculum_id=curriculum_id,
        teacher_id=teacher.id,
    )
    other_class_id = directory.create_class(
        admin,
        "Physics 8A",
        curriculum_id=other_curriculum_id,
        teacher_id=other_teacher.id,
        students=[other_student.id],
    )

    return Seed(
        admin=admin,
        teacher=teacher,
        other_teacher=other_teacher,
        tutor=tutor,
        student=student,
        other_student=other_student,
        curriculum_id=curriculum_id,
        lesson_id=lesson_id,
        foreign_lesson_id=foreign_lesson_id,
        class_id=class_id,
        sibling_class_id=sibling_class_id,
        other_class_id=other_class_id,
    )
