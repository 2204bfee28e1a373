"""
recurrence.py
─────────────
Recurrence cycle tracker: completion gating and cycle advancement for
recurring reminders.

A recurring reminder is never marked completed.  Completing it appends to
its history and moves its schedule on; `completed` stays False.
"""

from __future__ import annotations

from datetime import date as Date, datetime, timedelta
from typing import Iterable, Optional, Tuple

from .const import DATE_ONLY_TOLERANCE_DAYS, DEFAULT_COMPLETION_WINDOW
from .models import CompletionEntry, Reminder, YearlyDate
from .occurrence import (
    current_cycle_timestamp,
    next_cycle_timestamp,
    reminder_schedule,
    roll_yearly,
)


def has_completed_today(history: Iterable[CompletionEntry], now: datetime) -> bool:
    today = now.date()
    return any(entry.completed_at.date() == today for entry in history)


def is_completable_now(
    reminder: Reminder,
    now: datetime,
    window: timedelta = DEFAULT_COMPLETION_WINDOW,
) -> bool:
    """
    Whether the reminder can be marked done at `now`.

    Non-recurring reminders always can.  Untimed yearly reminders (a due date
    and no days) open one day either side of the date; other untimed
    recurring reminders are always open.  Timed recurring reminders open
    `window` before the next cycle, at most once per calendar day.
    """
    if not reminder.recurring:
        return True

    if not reminder.due_time:
        if reminder.due_date and not reminder.days:
            due = Date.fromisoformat(reminder.due_date)
            return abs((due - now.date()).days) <= DATE_ONLY_TOLERANCE_DAYS
        return True

    if has_completed_today(reminder.completion_history, now):
        return False

    spec = reminder_schedule(reminder, now)
    cycle = next_cycle_timestamp(spec, now) if spec else None
    if cycle is None:
        return True
    return now >= cycle - window


def cycle_timestamps(reminder: Reminder, now: datetime) -> Tuple[Optional[datetime], Optional[datetime]]:
    """(current cycle, next cycle) for display; (None, None) when unscheduled."""
    spec = reminder_schedule(reminder, now)
    if spec is None:
        return None, None
    return current_cycle_timestamp(spec, now), next_cycle_timestamp(spec, now)


def advance_cycle(reminder: Reminder, now: datetime) -> Reminder:
    """
    Record a completion at `now` and move the schedule to its next cycle.

    Yearly reminders get their due date rolled a year forward (clamped to the
    end of the month).  Daily and weekly reminders keep no date: their next
    instant is always worked out from `now` when they are rescheduled, with
    the just-completed cycle skipped.
    """
    spec = reminder_schedule(reminder, now)
    entry = CompletionEntry(
        completed_at=now,
        scheduled_for=current_cycle_timestamp(spec, now) if spec else None,
    )
    update = {
        "completion_history": [*reminder.completion_history, entry],
        "completed": False,
    }
    if spec is not None and isinstance(spec.pattern, YearlyDate):
        update["due_date"] = roll_yearly(spec.pattern.on).isoformat()
    return reminder.model_copy(update=update)
