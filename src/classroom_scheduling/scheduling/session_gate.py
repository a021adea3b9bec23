from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from classroom_scheduling.models import ACTIVE, CANCELLED, COMPLETED, ScheduleEntry
from classroom_scheduling.permissions import can_join_early


@dataclass(slots=True, frozen=True)
class JoinWindow:
    early: timedelta = timedelta(minutes=10)
    late: timedelta = timedelta(minutes=5)

    def opens_at(self, entry: ScheduleEntry) -> datetime:
        return entry.scheduled_start - self.early

    def closes_at(self, entry: ScheduleEntry) -> datetime:
        return entry.scheduled_end + self.late

    def contains(self, entry: ScheduleEntry, now: datetime) -> bool:
        return self.opens_at(entry) <= now <= self.closes_at(entry)


def can_join_now(
    actor_role: str,
    entry: ScheduleEntry,
    now: datetime,
    window: JoinWindow = JoinWindow(),
) -> bool:
    """Advisory check consulted before a video credential is requested."""
    if entry.status == CANCELLED:
        return False
    if can_join_early(actor_role):
        return True
    if entry.status == COMPLETED:
        return False
    return entry.status == ACTIVE or window.contains(entry, now)
