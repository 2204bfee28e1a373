"""
occurrence.py
─────────────
Occurrence calculator.

Pure functions of (schedule, now) that turn a ScheduleSpec into firing
instants.  Nothing here reads the clock or touches storage; callers pass
`now` in, so the same inputs always give the same answer.

A weekly day-set is planned as one weekly-repeating trigger per day, not as
one compound rule.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date as Date, datetime, timedelta
from typing import List, Optional

from dateutil.relativedelta import relativedelta

from .const import DEFAULT_COMPLETION_WINDOW
from .errors import PastScheduleError
from .models import (
    Alarm,
    AlarmMode,
    Daily,
    OneTimeDate,
    Reminder,
    RepeatPolicy,
    ScheduleSpec,
    TimeOfDay,
    Weekday,
    WeeklyDays,
    YearlyDate,
    days_pattern,
)


@dataclass(frozen=True)
class Occurrence:
    fire_at: datetime
    repeat: Optional[RepeatPolicy] = None
    day: Optional[Weekday] = None


# ── Single-instant calculators ────────────────────────────────────────────────

def next_daily_timestamp(time_of_day: TimeOfDay, now: datetime) -> datetime:
    """Today at `time_of_day`, or tomorrow if that is not after `now`."""
    candidate = time_of_day.on(now.date())
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def next_weekly_timestamp(time_of_day: TimeOfDay, day: Weekday, now: datetime) -> datetime:
    """Next `day` at `time_of_day` strictly after `now` (0–7 days ahead)."""
    ahead = (day.ordinal - now.weekday()) % 7
    candidate = time_of_day.on(now.date() + timedelta(days=ahead))
    if candidate <= now:
        candidate += timedelta(days=7)
    return candidate


def one_time_timestamp(time_of_day: TimeOfDay, on_date: Date, now: datetime) -> datetime:
    fire_at = time_of_day.on(on_date)
    if fire_at <= now:
        raise PastScheduleError(fire_at, now)
    return fire_at


def current_cycle_timestamp(spec: ScheduleSpec, now: datetime) -> Optional[datetime]:
    """
    Backward-looking: the cycle a completion at `now` is credited to.

    Yearly and one-time: the dated instant.  Weekly: the latest of each
    selected day's most recent occurrence (today counts, whatever the time).
    Daily: today at the time of day, even when that is still ahead.
    """
    tod = spec.time_of_day
    if tod is None:
        return None
    pattern = spec.pattern
    if isinstance(pattern, (YearlyDate, OneTimeDate)):
        return tod.on(pattern.on)
    if isinstance(pattern, WeeklyDays):
        today = now.date()
        return max(
            tod.on(today - timedelta(days=(now.weekday() - day.ordinal) % 7))
            for day in pattern.days
        )
    return tod.on(now.date())


def next_cycle_timestamp(spec: ScheduleSpec, now: datetime) -> Optional[datetime]:
    """Forward-looking: the nearest upcoming instant of the schedule."""
    tod = spec.time_of_day
    if tod is None:
        return None
    pattern = spec.pattern
    if isinstance(pattern, (YearlyDate, OneTimeDate)):
        return tod.on(pattern.on)
    if isinstance(pattern, WeeklyDays):
        return min(next_weekly_timestamp(tod, day, now) for day in pattern.days)
    return next_daily_timestamp(tod, now)


# ── Dates ─────────────────────────────────────────────────────────────────────

def auto_assign_date(time_of_day: TimeOfDay, now: datetime) -> Date:
    """Today if the time is still ahead (to the minute), else tomorrow."""
    selected = time_of_day.hour * 60 + time_of_day.minute
    current = now.hour * 60 + now.minute
    if selected > current:
        return now.date()
    return now.date() + timedelta(days=1)


def roll_yearly(on_date: Date, years: int = 1) -> Date:
    """Same month/day `years` later; Feb 29 clamps to Feb 28."""
    return on_date + relativedelta(years=years)


def next_yearly_date(on_date: Date, time_of_day: Optional[TimeOfDay], now: datetime) -> Date:
    """
    First anniversary of `on_date` whose instant is after `now`.

    Each step is taken from the original date so a Feb 29 clamped to Feb 28
    returns to Feb 29 in leap years.
    """
    years = 0
    while True:
        candidate = roll_yearly(on_date, years)
        if time_of_day is None:
            if candidate >= now.date():
                return candidate
        elif time_of_day.on(candidate) > now:
            return candidate
        years += 1


# ── Entity → schedule ─────────────────────────────────────────────────────────

def alarm_schedule(alarm: Alarm, now: datetime) -> ScheduleSpec:
    tod = TimeOfDay.parse(alarm.time)
    if alarm.mode is AlarmMode.ONE_TIME:
        on = Date.fromisoformat(alarm.date) if alarm.date else auto_assign_date(tod, now)
        return ScheduleSpec(time_of_day=tod, pattern=OneTimeDate(on=on))
    return ScheduleSpec(time_of_day=tod, pattern=days_pattern(alarm.days))


def reminder_schedule(reminder: Reminder, now: datetime) -> Optional[ScheduleSpec]:
    """
    Recurring: weekly for a partial day-set, daily for a full one, yearly
    for a due date with no days, daily otherwise.  Non-recurring: one-time
    when timed, nothing at all when untimed.
    """
    tod = TimeOfDay.parse(reminder.due_time) if reminder.due_time else None
    if reminder.recurring:
        if reminder.days:
            pattern = days_pattern(reminder.days)
        elif reminder.due_date:
            pattern = YearlyDate(on=Date.fromisoformat(reminder.due_date))
        else:
            pattern = Daily()
        return ScheduleSpec(time_of_day=tod, pattern=pattern)
    if tod is None:
        return None
    on = Date.fromisoformat(reminder.due_date) if reminder.due_date else auto_assign_date(tod, now)
    return ScheduleSpec(time_of_day=tod, pattern=OneTimeDate(on=on))


# ── Planning ──────────────────────────────────────────────────────────────────

def plan_occurrences(
    spec: ScheduleSpec,
    now: datetime,
    *,
    skip_current_cycle: bool = False,
    window: timedelta = DEFAULT_COMPLETION_WINDOW,
) -> List[Occurrence]:
    """
    One Occurrence per trigger the schedule needs.

    skip_current_cycle: for daily/weekly schedules, a pending instant inside
    the completion window has just been completed early, so plan from that
    instant instead of from `now`.

    Raises PastScheduleError for a one-time schedule that has passed.  A
    passed yearly date plans nothing; it is rolled forward elsewhere.
    """
    tod = spec.time_of_day
    if tod is None:
        return []
    pattern = spec.pattern

    if isinstance(pattern, OneTimeDate):
        return [Occurrence(one_time_timestamp(tod, pattern.on, now))]

    if isinstance(pattern, YearlyDate):
        fire_at = tod.on(pattern.on)
        return [Occurrence(fire_at)] if fire_at > now else []

    after = now
    if skip_current_cycle:
        pending = next_cycle_timestamp(spec, now)
        if pending - now <= window:
            after = pending

    if isinstance(pattern, WeeklyDays):
        return [
            Occurrence(next_weekly_timestamp(tod, day, after), RepeatPolicy.WEEKLY, day)
            for day in sorted(pattern.days, key=lambda d: d.ordinal)
        ]
    return [Occurrence(next_daily_timestamp(tod, after), RepeatPolicy.DAILY)]
