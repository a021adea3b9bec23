from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from classroom_scheduling.errors import AuthorizationError, ValidationError
from classroom_scheduling.models import PresenceEvent
from classroom_scheduling.scheduling.attendance import (
    ABSENT,
    EXCUSED,
    IN_PROGRESS,
    LATE,
    PARTIAL,
    PRESENT,
    UPCOMING,
    AttendancePolicy,
    accumulated_seconds,
    classify,
    clamped_overlap_seconds,
    effective_status,
    summarize,
)
from classroom_scheduling.services import NotEnrolledError


def at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 10, day, hour, minute, tzinfo=timezone.utc)


START = at(6, 10)
END = at(6, 11)


def event(joined_at, left_at=None, *, event_id=1, manual_status=None, manual_set_at=None) -> PresenceEvent:
    return PresenceEvent(
        id=event_id,
        schedule_id=1,
        student_id=1,
        joined_at=joined_at,
        left_at=left_at,
        manual_status=manual_status,
        manual_set_at=manual_set_at,
    )


def test_early_arrival_is_clamped_to_the_scheduled_window():
    events = [event(START - timedelta(minutes=5), START + timedelta(minutes=40))]

    seconds = accumulated_seconds(events, START, END, at(6, 12))

    assert seconds == 40 * 60
    assert classify(seconds, START, END, at(6, 12), connected=False) == PRESENT


def test_forgotten_disconnect_never_exceeds_scheduled_duration():
    events = [event(START - timedelta(minutes=30))]

    assert accumulated_seconds(events, START, END, at(6, 15)) == 60 * 60


def test_overlapping_events_are_not_counted_twice():
    events = [
        event(at(6, 10), at(6, 10, 30), event_id=1),
        event(at(6, 10, 15), at(6, 10, 45), event_id=2),
    ]

    assert accumulated_seconds(events, START, END, at(6, 12)) == 45 * 60


def test_clamped_overlap_outside_window_is_zero():
    assert clamped_overlap_seconds(at(6, 8), at(6, 9), START, END) == 0.0
    assert clamped_overlap_seconds(at(6, 10, 50), at(6, 11, 30), START, END) == 10 * 60


@pytest.mark.parametrize(
    ("accumulated", "now", "connected", "expected"),
    [
        (30 * 60, at(6, 12), False, PRESENT),
        (10 * 60, at(6, 12), False, PARTIAL),
        (150, at(6, 12), False, PARTIAL),
        (60, at(6, 12), False, ABSENT),
        (0, at(6, 9), False, UPCOMING),
        (0, at(6, 9, 55), True, IN_PROGRESS),
        (0, at(6, 10, 30), False, LATE),
        (60, at(6, 10, 30), True, IN_PROGRESS),
    ],
)
def test_classify_branches(accumulated, now, connected, expected):
    assert classify(accumulated, START, END, now, connected) == expected


def test_thresholds_come_from_policy():
    strict = AttendancePolicy(present_ratio=0.8, partial_ratio=0.5, partial_min_seconds=3600)

    assert classify(40 * 60, START, END, at(6, 12), False, strict) == PARTIAL
    assert classify(20 * 60, START, END, at(6, 12), False, strict) == ABSENT


def test_manual_status_wins_over_computed_time():
    events = [
        event(START, END, event_id=1),
        event(at(6, 12), at(6, 12), event_id=2, manual_status=ABSENT, manual_set_at=at(6, 12)),
    ]

    assert effective_status(events, START, END, at(6, 13)) == (ABSENT, True)


def test_latest_manual_status_wins():
    events = [
        event(START, END, event_id=1, manual_status=PRESENT, manual_set_at=at(6, 13)),
        event(at(6, 12), at(6, 12), event_id=2, manual_status=EXCUSED, manual_set_at=at(6, 12)),
    ]

    assert effective_status(events, START, END, at(6, 14)) == (PRESENT, True)


def test_summary_buckets():
    summary = summarize([PRESENT, EXCUSED, PARTIAL, LATE, ABSENT, UPCOMING, IN_PROGRESS])

    assert (summary.present, summary.partial, summary.missed) == (2, 2, 3)
    assert summary.total == 7


@pytest.fixture
def session(schedules, seed):
    return schedules.create_schedule(seed.teacher, seed.class_id, START, END)


def test_join_then_leave_records_duration(database, attendance, seed, session):
    event_id = attendance.log_presence(seed.student, session, "join", now=at(6, 10))
    assert attendance.log_presence(seed.student, session, "leave", now=at(6, 10, 30)) == event_id

    with database.connect() as connection:
        row = connection.execute(
            "SELECT left_at, duration_seconds, session_date, room_name FROM class_sessions WHERE id = ?",
            (event_id,),
        ).fetchone()

    assert row["duration_seconds"] == 1800
    assert row["session_date"] == "2025-10-06"
    assert row["room_name"].startswith("class-")


def test_rejoining_closes_the_open_event_first(database, attendance, seed, session):
    attendance.log_presence(seed.student, session, "join", now=at(6, 10))
    attendance.log_presence(seed.student, session, "join", now=at(6, 10, 5))

    with database.connect() as connection:
        rows = connection.execute(
            "SELECT left_at FROM class_sessions WHERE schedule_id = ? ORDER BY id",
            (session,),
        ).fetchall()

    assert len(rows) == 2
    assert rows[0]["left_at"] is not None
    assert rows[1]["left_at"] is None


def test_leave_without_join_records_nothing(attendance, seed, session):
    assert attendance.log_presence(seed.student, session, "leave", now=at(6, 10)) is None


def test_only_enrolled_students_are_logged(database, schedules, attendance, seed, session):
    assert attendance.log_presence(seed.teacher, session, "join") is None

    physics = schedules.create_schedule(seed.other_teacher, seed.other_class_id, START, END)
    with pytest.raises(NotEnrolledError):
        attendance.log_presence(seed.student, physics, "join")

    with pytest.raises(ValidationError):
        attendance.log_presence(seed.student, session, "wave")

    with database.connect() as connection:
        assert connection.execute("SELECT COUNT(*) FROM class_sessions").fetchone()[0] == 0


def test_manual_excused_without_presence(attendance, seed, session, clock):
    clock.set(at(6, 12))

    attendance.update_attendance(seed.teacher, session, seed.student.id, EXCUSED)

    assert attendance.get_student_status(session, seed.student.id) == EXCUSED
    report = attendance.get_attendance_details(seed.teacher, session)
    row = next(detail for detail in report.students if detail.student_id == seed.student.id)
    assert row.status == EXCUSED
    assert row.is_manual
    assert row.total_minutes == 0
    assert row.last_seen is None


def test_manual_override_patches_latest_event(attendance, seed, session, clock):
    attendance.log_presence(seed.student, session, "join", now=at(6, 10))
    attendance.log_presence(seed.student, session, "leave", now=at(6, 10, 50))
    clock.set(at(6, 12))

    attendance.update_attendance(seed.teacher, session, seed.student.id, PARTIAL)
    clock.advance(minutes=5)
    attendance.update_attendance(seed.admin, session, seed.student.id, ABSENT)

    assert attendance.get_student_status(session, seed.student.id) == ABSENT


def test_manual_override_requires_permission_and_valid_input(attendance, seed, session):
    with pytest.raises(ValidationError):
        attendance.update_attendance(seed.teacher, session, seed.student.id, "sleeping")

    with pytest.raises(AuthorizationError):
        attendance.update_attendance(seed.student, session, seed.student.id, PRESENT)

    with pytest.raises(AuthorizationError):
        attendance.update_attendance(seed.other_teacher, session, seed.student.id, PRESENT)

    with pytest.raises(ValidationError):
        attendance.update_attendance(seed.teacher, session, seed.teacher.id, PRESENT)


def test_attendance_details_report(attendance, seed, session):
    attendance.log_presence(seed.student, session, "join", now=at(6, 9, 55))
    attendance.log_presence(seed.student, session, "leave", now=at(6, 10, 40))

    report = attendance.get_attendance_details(seed.teacher, session, now=at(6, 11, 30))

    assert [detail.full_name for detail in report.students] == ["Bea Another", "Sam Student"]
    sam = report.students[1]
    assert sam.status == PRESENT
    assert not sam.is_manual
    assert sam.total_minutes == 40
    assert sam.last_seen == at(6, 10, 40)
    assert sam.email == "student@school.test"
    assert report.students[0].status == ABSENT
    assert (report.summary.present, report.summary.partial, report.summary.missed) == (1, 0, 1)

    with pytest.raises(AuthorizationError):
        attendance.get_attendance_details(seed.other_teacher, session)


def test_connected_student_is_in_progress(attendance, seed, session):
    attendance.log_presence(seed.student, session, "join", now=at(6, 10))

    assert attendance.get_student_status(session, seed.student.id, now=at(6, 10, 1)) == IN_PROGRESS
    assert attendance.get_student_status(session, seed.other_student.id, now=at(6, 10, 1)) == LATE


def test_student_progress_counts_past_sessions(schedules, attendance, seed, session, clock):
    second = schedules.create_schedule(seed.teacher, seed.class_id, at(7, 10), at(7, 11))
    cancelled = schedules.create_schedule(seed.teacher, seed.class_id, at(8, 10), at(8, 11))
    schedules.cancel_schedule(seed.teacher, cancelled)
    schedules.create_schedule(seed.teacher, seed.class_id, at(20, 10), at(20, 11))
    attendance.log_presence(seed.student, session, "join", now=at(6, 10))
    attendance.log_presence(seed.student, session, "leave", now=at(6, 11))
    attendance.update_attendance(seed.teacher, second, seed.student.id, ABSENT, now=at(7, 12))
    clock.set(at(10, 12))

    progress = attendance.get_student_progress(seed.student)

    assert len(progress) == 1
    math = progress[0]
    assert math.class_name == "Math 7A"
    assert math.teacher_name == "Tom Teacher"
    assert math.curriculum_title == "Mathematics"
    assert (math.total_past_sessions, math.attended_sessions) == (2, 1)
    assert math.progress == 50
    assert math.total_classes == 3
    assert math.next_session == at(20, 10)
