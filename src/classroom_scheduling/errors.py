"""Error taxonomy for the scheduling core.

Every error raised by a service operation derives from ``SchedulingError`` so
callers can catch the whole family, while the mixed-in builtins keep
``except ValueError`` / ``except LookupError`` call sites working.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

CLASS_SCHEDULE_CONFLICT = "CLASS_SCHEDULE_CONFLICT"
TEACHER_SCHEDULE_CONFLICT = "TEACHER_SCHEDULE_CONFLICT"


class SchedulingError(RuntimeError):
    """Base exception for all scheduling core errors."""


class ValidationError(SchedulingError, ValueError):
    """Input rejected before any write; the caller can correct and retry."""


class NotFoundError(SchedulingError, LookupError):
    """A schedule, class, lesson, user or room reference does not resolve."""


class AuthorizationError(SchedulingError, PermissionError):
    """The actor lacks the role or ownership required for the target class."""


class ScheduleConflict(SchedulingError):
    """A proposed time window overlaps an existing non-cancelled entry.

    ``code`` tells the class-level clash apart from the teacher-level one so
    the UI layer can render distinct messages.
    """

    def __init__(self, code: str, class_name: str, conflict_time: datetime, schedule_id: int | None = None) -> None:
        self.code = code
        self.class_name = class_name
        self.conflict_time = conflict_time
        self.schedule_id = schedule_id
        if code == TEACHER_SCHEDULE_CONFLICT:
            message = f"Teacher already has another session ({class_name}) at {conflict_time.isoformat()}."
        else:
            message = f"Class {class_name} already has a session at {conflict_time.isoformat()}."
        super().__init__(message)

    @property
    def is_teacher_conflict(self) -> bool:
        return self.code == TEACHER_SCHEDULE_CONFLICT

    def as_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "className": self.class_name,
            "conflictTime": self.conflict_time.isoformat(),
        }
