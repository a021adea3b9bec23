from .scheduling import (
    ACTIVE,
    ADMIN,
    CANCELLED,
    COMPLETED,
    SCHEDULED,
    STUDENT,
    SUPERADMIN,
    TEACHER,
    TUTOR,
    Actor,
    AttendanceDetail,
    AttendanceReport,
    AttendanceSummary,
    ClassEntity,
    ClassProgress,
    Curriculum,
    Lesson,
    OperationResult,
    PresenceEvent,
    RecurrenceRule,
    ScheduleEntry,
    ScheduleFilters,
    ScheduleItem,
    SeriesCreated,
    SeriesId,
    SessionStatus,
    User,
)

__all__ = [
    "ACTIVE",
    "ADMIN",
    "CANCELLED",
    "COMPLETED",
    "SCHEDULED",
    "STUDENT",
    "SUPERADMIN",
    "TEACHER",
    "TUTOR",
    "Actor",
    "AttendanceDetail",
    "AttendanceReport",
    "AttendanceSummary",
    "ClassEntity",
    "ClassProgress",
    "Curriculum",
    "Lesson",
    "OperationResult",
    "PresenceEvent",
    "RecurrenceRule",
    "ScheduleEntry",
    "ScheduleFilters",
    "ScheduleItem",
    "SeriesCreated",
    "SeriesId",
    "SessionStatus",
    "User",
]
