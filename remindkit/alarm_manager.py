"""
alarm_manager.py
────────────────
Alarm storage and scheduling.

One-time alarms saved without a date are pinned to a date on save (today if
the time is still ahead, otherwise tomorrow) so the stored record describes
exactly one instant.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional, Tuple

from .const import DEFAULT_SNOOZE, STORAGE_KEY_ALARMS
from .migration import migrate_alarm
from .entity_manager import EntityManager
from .models import Alarm, AlarmMode, TimeOfDay
from .occurrence import auto_assign_date


class AlarmManager(EntityManager[Alarm]):
    storage_key = STORAGE_KEY_ALARMS
    migrate = staticmethod(migrate_alarm)

    def _migrate(self, raw: Any) -> Tuple[Alarm, bool]:
        return migrate_alarm(raw, created_at=self._clock.now())

    def _prepare(self, alarm: Alarm) -> Alarm:
        if alarm.mode is AlarmMode.ONE_TIME and not alarm.date:
            on = auto_assign_date(TimeOfDay.parse(alarm.time), self._clock.now())
            return alarm.model_copy(update={"date": on.isoformat()})
        if alarm.mode is AlarmMode.RECURRING and alarm.date:
            return alarm.model_copy(update={"date": None})
        return alarm

    async def snooze(self, alarm_id: str, delay: timedelta = DEFAULT_SNOOZE) -> Optional[str]:
        """Ring the alarm again after `delay`; returns the transient trigger id."""
        alarm = self.get(alarm_id)
        if alarm is None or alarm.deleted_at is not None:
            return None
        return await self._notifications.snooze(alarm, delay)
