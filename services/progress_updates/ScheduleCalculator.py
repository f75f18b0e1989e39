"""Recurring schedule calculator.

Pure functions, no I/O and no shared state: given a schedule definition and an
anchor time, compute the next time a progress update is due.

Date arithmetic happens on the wall clock of the configured timezone, so
"every Wednesday at 09:00" stays at 09:00 local time across DST changes.
Results are returned in UTC.
"""

import calendar
import re
from datetime import datetime, timedelta

import pytz
from pytz.tzinfo import BaseTzInfo

from shared.exceptions.EngagementErrors import ValidationError
from shared.models.engagement import ScheduledUpdate, UpdateFrequency

DEFAULT_TIME = "09:00"
_TIME_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{1,2})\s*$")


def validate_schedule(schedule: ScheduledUpdate) -> None:
    """Reject day anchors outside their calendar range.

    Raises:
        ValidationError: If day_of_week is outside 1-7 or day_of_month outside 1-31.
    """
    if schedule.day_of_week is not None and not 1 <= schedule.day_of_week <= 7:
        raise ValidationError(f"day_of_week must be between 1 (Monday) and 7 (Sunday), got {schedule.day_of_week}.")
    if schedule.day_of_month is not None and not 1 <= schedule.day_of_month <= 31:
        raise ValidationError(f"day_of_month must be between 1 and 31, got {schedule.day_of_month}.")


def parse_time_of_day(value: str | None, default: str = DEFAULT_TIME) -> tuple[int, int]:
    """Parse "HH:MM" into (hour, minute). Unset or unparseable values fall back to default."""
    for candidate in (value, default, DEFAULT_TIME):
        if candidate is None:
            continue
        match = _TIME_PATTERN.match(candidate)
        if match:
            hour, minute = int(match.group(1)), int(match.group(2))
            if hour < 24 and minute < 60:
                return hour, minute
    return 9, 0


def add_months(value: datetime, months: int, day: int | None = None) -> datetime:
    """Move a naive datetime by whole calendar months.

    The resulting day is `day` (or the original day) clamped to the last day of the
    target month, so Jan 31 + 1 month is Feb 28/29, never an invalid date.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    target_day = min(day if day is not None else value.day, last_day)
    return value.replace(year=year, month=month, day=target_day)


def next_occurrence(
    schedule: ScheduledUpdate,
    anchor: datetime,
    tz: BaseTzInfo = pytz.utc,
    default_time: str = DEFAULT_TIME,
) -> datetime | None:
    """Compute the next time a scheduled update is due.

    Args:
        schedule (ScheduledUpdate): The recurrence rule.
        anchor (datetime): Base time used when the schedule has never been sent.
        tz (BaseTzInfo): Timezone whose wall clock the day/time anchors refer to.
        default_time (str): Time of day applied when schedule.time is unset or unparseable.

    Returns:
        datetime | None: The next occurrence in UTC, or None for MILESTONE_BASED schedules,
            which are advanced by milestone completion rather than by the clock.

    Raises:
        ValidationError: If the schedule's day anchors are out of range.
    """
    validate_schedule(schedule)
    if schedule.frequency == UpdateFrequency.MILESTONE_BASED:
        return None

    base = schedule.last_sent_at or anchor
    if base.tzinfo is None:
        base = pytz.utc.localize(base)
    local = base.astimezone(tz).replace(tzinfo=None)

    if schedule.frequency == UpdateFrequency.DAILY:
        local = local + timedelta(days=1)
    elif schedule.frequency == UpdateFrequency.WEEKLY:
        if schedule.day_of_week is not None:
            # always move at least one day, even if base already falls on the weekday
            local = local + timedelta(days=1)
            while local.isoweekday() != schedule.day_of_week:
                local = local + timedelta(days=1)
        else:
            local = local + timedelta(days=7)
    elif schedule.frequency == UpdateFrequency.BI_WEEKLY:
        local = local + timedelta(days=14)
    elif schedule.frequency == UpdateFrequency.MONTHLY:
        local = add_months(local, 1, day=schedule.day_of_month)

    hour, minute = parse_time_of_day(schedule.time, default=default_time)
    local = local.replace(hour=hour, minute=minute, second=0, microsecond=0)

    # ambiguous and non-existent local times resolve to the standard offset
    return tz.normalize(tz.localize(local, is_dst=False)).astimezone(pytz.utc)


def with_next_occurrence(
    schedule: ScheduledUpdate,
    anchor: datetime,
    tz: BaseTzInfo = pytz.utc,
    default_time: str = DEFAULT_TIME,
) -> ScheduledUpdate:
    """Return a copy of the schedule with next_scheduled_at recomputed."""
    return schedule.model_copy(update={"next_scheduled_at": next_occurrence(schedule, anchor, tz, default_time)})
