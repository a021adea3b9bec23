from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from classroom_scheduling.config import settings as settings_module
from classroom_scheduling.config.settings import Settings
from classroom_scheduling.data import Database
from classroom_scheduling.logging import get_logger, setup_logging
from classroom_scheduling.scheduling import AttendancePolicy, JoinWindow
from classroom_scheduling.services import AttendanceService, DirectoryService, ScheduleService
from classroom_scheduling.utils.time import utc_now

logger = get_logger(__name__)


@dataclass(slots=True)
class SchedulingApp:
    settings: Settings
    database: Database
    directory: DirectoryService
    schedules: ScheduleService
    attendance: AttendanceService


def build_app(
    settings: Optional[Settings] = None,
    *,
    clock: Callable[[], datetime] = utc_now,
    configure_logging: bool = True,
) -> SchedulingApp:
    """Wire the database and services from ``settings`` and apply migrations."""
    settings = settings or settings_module.settings
    if configure_logging:
        setup_logging(json_output=settings.log_json, log_level=settings.log_level)

    database = Database(settings.database_path)
    database.initialize()

    join_window = JoinWindow(
        early=timedelta(minutes=settings.join_early_minutes),
        late=timedelta(minutes=settings.join_late_minutes),
    )
    policy = AttendancePolicy(
        present_ratio=settings.attendance_present_ratio,
        partial_ratio=settings.attendance_partial_ratio,
        partial_min_seconds=settings.attendance_partial_min_seconds,
    )

    app = SchedulingApp(
        settings=settings,
        database=database,
        directory=DirectoryService(database),
        schedules=ScheduleService(
            database,
            clock=clock,
            timezone=settings.scheduling_timezone,
            default_occurrences=settings.recurrence_default_occurrences,
            join_window=join_window,
        ),
        attendance=AttendanceService(
            database,
            clock=clock,
            policy=policy,
            timezone=settings.scheduling_timezone,
        ),
    )
    logger.info("app_ready", database=str(database.path), timezone=settings.scheduling_timezone)
    return app
