"""
reminder_manager.py
───────────────────
Reminder storage, completion and scheduling.

Non-recurring reminders toggle between done and not done; completing one
withdraws its triggers, un-completing re-arms them if the time is still
ahead.  Recurring reminders are never "done": completing one records the
cycle in its history and moves the schedule on.
"""

from __future__ import annotations

from datetime import date as Date, datetime, timedelta
from typing import Optional, Tuple

from .clock import Clock
from .const import DEFAULT_COMPLETION_WINDOW, LOGGER, STORAGE_KEY_REMINDERS
from .entity_manager import EntityManager
from .migration import migrate_reminder
from .models import CompletionEntry, Reminder, TimeOfDay
from .notifications import NotificationLifecycleManager
from .occurrence import auto_assign_date, next_yearly_date
from .recurrence import advance_cycle, cycle_timestamps, has_completed_today, is_completable_now
from .storage import KeyValueStore


class ReminderManager(EntityManager[Reminder]):
    storage_key = STORAGE_KEY_REMINDERS
    migrate = staticmethod(migrate_reminder)

    def __init__(
        self,
        store: KeyValueStore,
        notifications: NotificationLifecycleManager,
        clock: Optional[Clock] = None,
        *,
        completion_window: timedelta = DEFAULT_COMPLETION_WINDOW,
    ):
        super().__init__(store, notifications, clock)
        self._window = completion_window

    def _prepare(self, reminder: Reminder) -> Reminder:
        if not reminder.recurring and reminder.due_time and not reminder.due_date:
            on = auto_assign_date(TimeOfDay.parse(reminder.due_time), self._clock.now())
            return reminder.model_copy(update={"due_date": on.isoformat()})
        return reminder

    # ── Cycle queries ─────────────────────────────────────────────────────────

    def is_completable_now(self, reminder: Reminder) -> bool:
        return is_completable_now(reminder, self._clock.now(), self._window)

    def has_completed_today(self, reminder: Reminder) -> bool:
        return has_completed_today(reminder.completion_history, self._clock.now())

    def cycle_timestamps(self, reminder: Reminder) -> Tuple[Optional[datetime], Optional[datetime]]:
        return cycle_timestamps(reminder, self._clock.now())

    # ── Completion ────────────────────────────────────────────────────────────

    async def toggle_complete(self, reminder_id: str) -> Optional[Reminder]:
        """Flip a non-recurring reminder between done and not done."""
        current = self.get(reminder_id)
        if current is None:
            return None
        if current.recurring:
            return await self.complete_recurring(reminder_id)

        if current.completed:
            history = current.completion_history[:-1]
            reopened = current.model_copy(update={
                "completed": False,
                "completed_at": None,
                "completion_history": history,
            })
            return await self._resync(reopened, strict=False)

        now = self._clock.now()
        done = current.model_copy(update={
            "completed": True,
            "completed_at": now,
            "completion_history": [*current.completion_history, CompletionEntry(completed_at=now)],
        })
        return await self._resync(done)

    async def complete(self, reminder_id: str) -> Optional[Reminder]:
        """Mark done: advance recurring reminders, close one-off ones."""
        current = self.get(reminder_id)
        if current is None:
            return None
        if current.recurring:
            return await self.complete_recurring(reminder_id)
        if current.completed:
            return current
        return await self.toggle_complete(reminder_id)

    async def complete_recurring(self, reminder_id: str) -> Optional[Reminder]:
        """
        Credit the current cycle and reschedule from the next one.

        Returns the reminder unchanged when it is not completable now
        (outside the early-completion window or already done today).
        """
        current = self.get(reminder_id)
        if current is None:
            return None
        now = self._clock.now()
        if not is_completable_now(current, now, self._window):
            LOGGER.info("Reminder %s is not completable at %s", reminder_id, now)
            return current
        advanced = advance_cycle(current, now)
        return await self._resync(advanced, strict=False, skip_current_cycle=True)

    # ── Yearly re-arm ─────────────────────────────────────────────────────────

    async def reschedule_yearly(self, reminder_id: str) -> Optional[Reminder]:
        """
        Move a recurring yearly reminder whose date has passed on to its next
        anniversary and re-arm it.  Other reminders are returned unchanged.
        """
        current = self.get(reminder_id)
        if current is None or not current.recurring or current.days or not current.due_date:
            return current
        now = self._clock.now()
        on = Date.fromisoformat(current.due_date)
        tod = TimeOfDay.parse(current.due_time) if current.due_time else None
        next_on = next_yearly_date(on, tod, now)
        if next_on == on and current.notification_ids:
            return current
        moved = current.model_copy(update={"due_date": next_on.isoformat()})
        LOGGER.info("Yearly reminder %s moves to %s", reminder_id, next_on)
        return await self._resync(moved, strict=False)
