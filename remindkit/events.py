"""
events.py
─────────
Routing for notification events coming back from the platform (delivered,
pressed, dismissed).

  - classify(): alarm / reminder / unknown, from the payload data
  - HandledNotifications: remembers handled notification ids for a TTL so
    the same delivery is not acted on twice
  - PendingAlarmSlot: holds the alarm the UI should open next
  - EventRouter: applies the side effects (soft-delete a dismissed one-time
    alarm, re-arm a yearly reminder)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Dict, Mapping, Optional

from .clock import Clock, SystemClock
from .const import DATA_ALARM_ID, DATA_REMINDER_ID, DEFAULT_DEDUP_TTL, LOGGER
from .models import AlarmMode

if TYPE_CHECKING:
    from .alarm_manager import AlarmManager
    from .reminder_manager import ReminderManager


class EventType(str, Enum):
    DISMISSED    = "dismissed"
    DELIVERED    = "delivered"
    PRESS        = "press"
    ACTION_PRESS = "action_press"


class NotificationKind(str, Enum):
    ALARM    = "alarm"
    REMINDER = "reminder"
    UNKNOWN  = "unknown"


@dataclass
class NotificationEvent:
    type: EventType
    notification_id: Optional[str] = None
    data: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PendingAlarm:
    alarm_id: str
    notification_id: str


def classify(data: Optional[Mapping[str, str]]) -> NotificationKind:
    """Alarm ids win over reminder ids; anything else (previews…) is unknown."""
    if not data:
        return NotificationKind.UNKNOWN
    if data.get(DATA_ALARM_ID):
        return NotificationKind.ALARM
    if data.get(DATA_REMINDER_ID):
        return NotificationKind.REMINDER
    return NotificationKind.UNKNOWN


class HandledNotifications:
    def __init__(self, clock: Optional[Clock] = None, ttl: timedelta = DEFAULT_DEDUP_TTL):
        self._clock = clock or SystemClock()
        self._ttl = ttl
        self._handled: Dict[str, datetime] = {}

    def mark(self, notification_id: str) -> None:
        now = self._clock.now()
        self._handled = {k: t for k, t in self._handled.items() if now - t <= self._ttl}
        self._handled[notification_id] = now

    def was_handled(self, notification_id: Optional[str]) -> bool:
        if not notification_id:
            return False
        handled_at = self._handled.get(notification_id)
        if handled_at is None:
            return False
        return self._clock.now() - handled_at <= self._ttl

    def __len__(self) -> int:
        return len(self._handled)


class PendingAlarmSlot:
    """The alarm waiting to be shown; written by event handling, read by the UI."""

    def __init__(self):
        self._pending: Optional[PendingAlarm] = None

    def set(self, pending: PendingAlarm) -> None:
        self._pending = pending

    def get(self) -> Optional[PendingAlarm]:
        return self._pending

    def clear(self) -> None:
        self._pending = None


class EventRouter:
    def __init__(
        self,
        alarms: "AlarmManager",
        reminders: "ReminderManager",
        clock: Optional[Clock] = None,
        dedup_ttl: timedelta = DEFAULT_DEDUP_TTL,
    ):
        self._alarms = alarms
        self._reminders = reminders
        self.handled = HandledNotifications(clock, dedup_ttl)
        self.pending = PendingAlarmSlot()

    async def handle(self, event: NotificationEvent) -> Optional[PendingAlarm]:
        """Apply the event's side effects; returns the alarm to show, if any."""
        kind = classify(event.data)
        LOGGER.debug("Notification event %s (%s) id=%s", event.type.value, kind.value, event.notification_id)

        if kind is NotificationKind.ALARM:
            return await self._handle_alarm(event)
        if kind is NotificationKind.REMINDER and event.type in (EventType.DELIVERED, EventType.DISMISSED):
            await self._reminders.reschedule_yearly(event.data[DATA_REMINDER_ID])
        return None

    async def _handle_alarm(self, event: NotificationEvent) -> Optional[PendingAlarm]:
        alarm_id = event.data[DATA_ALARM_ID]

        if event.type is EventType.DISMISSED:
            alarm = self._alarms.get(alarm_id)
            if alarm is not None and alarm.mode is AlarmMode.ONE_TIME:
                await self._alarms.soft_delete(alarm_id)
            return None

        if event.type not in (EventType.PRESS, EventType.DELIVERED):
            return None
        if not event.notification_id or self.handled.was_handled(event.notification_id):
            return None

        self.handled.mark(event.notification_id)
        pending = PendingAlarm(alarm_id=alarm_id, notification_id=event.notification_id)
        self.pending.set(pending)
        return pending
