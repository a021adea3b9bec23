"""Recurrence expansion for class series.

Occurrences are computed on the anchor's wall clock: a series anchored at
Monday 10:00 in a zone with daylight saving keeps meeting at 10:00 local time.
Weekday numbers follow 0=Sunday .. 6=Saturday throughout.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import Any, Iterable, Iterator, Mapping

from dateutil.relativedelta import relativedelta

from classroom_scheduling.errors import ValidationError
from classroom_scheduling.models import RecurrenceRule
from classroom_scheduling.models.scheduling import RECURRENCE_TYPES
from classroom_scheduling.utils.time import ensure_aware, from_storage, js_weekday

DEFAULT_OCCURRENCES = 52
HORIZON = timedelta(days=365)

_PERIOD_DAYS = {"weekly": 7, "biweekly": 14}


def parse_rule(payload: Mapping[str, Any] | RecurrenceRule) -> RecurrenceRule:
    """Build a validated rule from a mapping using either camelCase or snake_case keys."""
    if isinstance(payload, RecurrenceRule):
        validate_rule(payload)
        return payload

    days = payload.get("daysOfWeek", payload.get("days_of_week")) or ()
    end_raw = payload.get("endDate", payload.get("end_date"))
    occurrences = payload.get("occurrences")

    try:
        rule = RecurrenceRule(
            type=str(payload.get("type", "")).strip().lower(),
            days_of_week=tuple(sorted({int(day) for day in days})),
            end_date=from_storage(end_raw) if end_raw is not None else None,
            occurrences=int(occurrences) if occurrences is not None else None,
        )
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid recurrence rule: {exc}") from exc

    validate_rule(rule)
    return rule


def rule_from_json(text: str) -> RecurrenceRule:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValidationError("Stored recurrence rule is not valid JSON.") from exc
    return parse_rule(payload)


def validate_rule(rule: RecurrenceRule) -> None:
    if rule.type not in RECURRENCE_TYPES:
        raise ValidationError(f"Unsupported recurrence type: {rule.type!r}")
    if any(day < 0 or day > 6 for day in rule.days_of_week):
        raise ValidationError("Weekdays must be between 0 (Sunday) and 6 (Saturday).")
    if rule.occurrences is not None and rule.occurrences < 1:
        raise ValidationError("Occurrences must be a positive number.")


def align_anchor(
    start: datetime, end: datetime, days_of_week: Iterable[int]
) -> tuple[datetime, datetime]:
    """Shift a window forward to the nearest allowed weekday, preserving its duration."""
    allowed = sorted(set(days_of_week))
    if not allowed:
        return start, end

    day = js_weekday(start)
    if day in allowed:
        return start, end

    next_day = next((candidate for candidate in allowed if candidate > day), allowed[0])
    days_to_add = next_day - day if next_day > day else (7 - day) + next_day
    shift = timedelta(days=days_to_add)
    return start + shift, end + shift


def expand(
    anchor_start: datetime,
    rule: RecurrenceRule,
    *,
    default_occurrences: int = DEFAULT_OCCURRENCES,
) -> list[datetime]:
    """Return the ascending occurrence start times produced by ``rule``.

    The result may be empty when a weekday filter excludes every candidate;
    callers treat that as invalid input.
    """
    validate_rule(rule)
    anchor = ensure_aware(anchor_start)

    limit = rule.occurrences
    if limit is None and rule.end_date is None:
        limit = default_occurrences

    horizon_end = anchor + HORIZON
    end_bound = horizon_end
    if rule.end_date is not None:
        end_bound = min(ensure_aware(rule.end_date), horizon_end)

    if rule.type == "daily":
        candidates = _daily(anchor, rule.days_of_week)
    elif rule.type == "monthly":
        candidates = _monthly(anchor, rule.days_of_week)
    else:
        candidates = _weekly(anchor, rule.days_of_week, _PERIOD_DAYS[rule.type])

    occurrences: list[datetime] = []
    for candidate in candidates:
        if candidate > end_bound or candidate >= horizon_end:
            break
        if candidate < anchor:
            continue
        occurrences.append(candidate)
        if limit is not None and len(occurrences) >= limit:
            break

    return sorted(set(occurrences))


def _daily(anchor: datetime, days_of_week: tuple[int, ...]) -> Iterator[datetime]:
    for offset in range(HORIZON.days + 1):
        candidate = anchor + timedelta(days=offset)
        if days_of_week and js_weekday(candidate) not in days_of_week:
            continue
        yield candidate


def _weekly(anchor: datetime, days_of_week: tuple[int, ...], period_days: int) -> Iterator[datetime]:
    anchor_day = js_weekday(anchor)
    targets = days_of_week or (anchor_day,)
    # Offsets within a period are < 7, so ordering by offset keeps the stream ascending.
    offsets = sorted((target - anchor_day) % 7 for target in set(targets))

    period = 0
    while period * period_days <= HORIZON.days:
        period_start = anchor + timedelta(days=period * period_days)
        for offset in offsets:
            yield period_start + timedelta(days=offset)
        period += 1


def _monthly(anchor: datetime, days_of_week: tuple[int, ...]) -> Iterator[datetime]:
    for months in range(13):
        # Stepping from the anchor, not the previous occurrence, keeps the 31st on the 31st when possible.
        candidate = anchor + relativedelta(months=months)
        if days_of_week and js_weekday(candidate) not in days_of_week:
            continue
        yield candidate
