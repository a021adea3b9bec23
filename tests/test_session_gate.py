from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from classroom_scheduling.models import (
    ACTIVE,
    ADMIN,
    CANCELLED,
    COMPLETED,
    SCHEDULED,
    STUDENT,
    TEACHER,
    TUTOR,
    ScheduleEntry,
)
from classroom_scheduling.scheduling import JoinWindow, can_join_now

START = datetime(2025, 10, 6, 10, 0, tzinfo=timezone.utc)
END = datetime(2025, 10, 6, 11, 0, tzinfo=timezone.utc)


def entry(status: str = SCHEDULED) -> ScheduleEntry:
    return ScheduleEntry(id=1, class_id=1, scheduled_start=START, scheduled_end=END, room_name="class-1-abc", status=status)


@pytest.mark.parametrize(
    ("offset", "expected"),
    [
        (timedelta(minutes=-11), False),
        (timedelta(minutes=-10), True),
        (timedelta(minutes=30), True),
        (timedelta(minutes=65), True),
        (timedelta(minutes=66), False),
    ],
)
def test_student_join_window(offset, expected):
    assert can_join_now(STUDENT, entry(), START + offset) is expected


def test_active_session_is_joinable_outside_window():
    assert can_join_now(STUDENT, entry(ACTIVE), START - timedelta(hours=2))


def test_completed_session_is_closed_to_students():
    assert not can_join_now(STUDENT, entry(COMPLETED), START + timedelta(minutes=30))


@pytest.mark.parametrize("role", [TEACHER, TUTOR, ADMIN])
def test_elevated_roles_can_join_any_time(role):
    assert can_join_now(role, entry(), START - timedelta(days=1))
    assert can_join_now(role, entry(COMPLETED), END + timedelta(days=1))


@pytest.mark.parametrize("role", [STUDENT, TEACHER, ADMIN])
def test_nobody_joins_cancelled_sessions(role):
    assert not can_join_now(role, entry(CANCELLED), START)


def test_window_is_configurable():
    window = JoinWindow(early=timedelta(minutes=30), late=timedelta(0))

    assert can_join_now(STUDENT, entry(), START - timedelta(minutes=25), window)
    assert not can_join_now(STUDENT, entry(), END + timedelta(minutes=1), window)
    assert window.opens_at(entry()) == START - timedelta(minutes=30)
    assert window.closes_at(entry()) == END
