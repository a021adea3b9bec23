from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

from structlog.testing import capture_logs

from classroom_scheduling.app import build_app
from classroom_scheduling.config import settings as settings_module
from classroom_scheduling.config.settings import Settings
from classroom_scheduling.config.user_settings_store import UserSettingsStore
from classroom_scheduling.logging import get_logger
from classroom_scheduling.models import ADMIN, STUDENT, TEACHER, Actor


def test_user_settings_store_persists_known_keys(tmp_path: Path) -> None:
    store = UserSettingsStore(home_dir=tmp_path)
    assert store.get("attendance_present_ratio") == 0.5

    store.update(attendance_present_ratio=0.75, favourite_colour="blue")

    reloaded = UserSettingsStore(home_dir=tmp_path)
    assert reloaded.get("attendance_present_ratio") == 0.75
    assert "favourite_colour" not in reloaded.data


def test_corrupt_settings_file_falls_back_to_defaults(tmp_path: Path) -> None:
    (tmp_path / "user_settings.json").write_text("{not json", encoding="utf-8")

    store = UserSettingsStore(home_dir=tmp_path)

    assert store.get("join_early_minutes") == 10
    assert store.get("scheduling_timezone") == "UTC"


def test_refresh_reads_environment_overrides(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(settings_module, "settings", settings_module.settings)
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "env.db"))
    monkeypatch.setenv("ATTENDANCE_PRESENT_RATIO", "0.6")
    monkeypatch.setenv("JOIN_EARLY_MINUTES", "15")
    monkeypatch.setenv("SCHEDULING_TIMEZONE", "Europe/Helsinki")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("LOG_JSON", "true")

    refreshed = settings_module.refresh_settings_from_store()

    assert refreshed is settings_module.settings
    assert refreshed.database_path == tmp_path / "env.db"
    assert refreshed.attendance_present_ratio == 0.6
    assert refreshed.join_early_minutes == 15
    assert refreshed.scheduling_timezone == "Europe/Helsinki"
    assert refreshed.log_level == "DEBUG"
    assert refreshed.log_json is True
    assert "join_early_minutes=15" in refreshed.describe()


def test_build_app_wires_services_from_settings(tmp_path: Path) -> None:
    now = datetime(2025, 10, 6, 9, 40, tzinfo=timezone.utc)
    app = build_app(
        Settings(database_path=tmp_path / "app.db", join_early_minutes=20),
        clock=lambda: now,
        configure_logging=False,
    )
    assert app.database.path == tmp_path / "app.db"

    admin = Actor(app.directory.create_user("admin@school.test", ADMIN), ADMIN)
    teacher_id = app.directory.create_user("teacher@school.test", TEACHER)
    student = Actor(app.directory.create_user("student@school.test", STUDENT), STUDENT)
    curriculum_id = app.directory.create_curriculum(admin, "Chemistry")
    class_id = app.directory.create_class(
        admin, "Chem 9", curriculum_id=curriculum_id, teacher_id=teacher_id, students=[student.id]
    )
    start = datetime(2025, 10, 6, 10, 0, tzinfo=timezone.utc)
    schedule_id = app.schedules.create_schedule(admin, class_id, start, start + timedelta(hours=1))

    status = app.schedules.get_session_status(schedule_id, actor=student)

    assert status.can_join_now is True
    assert app.attendance.log_presence(student, schedule_id, "join") is not None


def test_loggers_are_tagged_with_their_component() -> None:
    logger = get_logger("classroom_scheduling.services.schedule_service")

    with capture_logs() as logs:
        logger.info("room_live", schedule_id=7)

    assert logs == [
        {"event": "room_live", "log_level": "info", "component": "schedule_service", "schedule_id": 7}
    ]
