"""Shared fixtures: a pinned clock, an in-memory store and a recording trigger backend."""

# pylint: disable=redefined-outer-name

from datetime import datetime
from typing import List, Optional, Tuple

import pytest

from remindkit.alarm_manager import AlarmManager
from remindkit.clock import FixedClock
from remindkit.models import RepeatPolicy, TriggerPayload
from remindkit.notifications import NotificationLifecycleManager
from remindkit.reminder_manager import ReminderManager
from remindkit.storage import MemoryStore

# Thursday
NOW = datetime(2024, 6, 13, 10, 0)


class RecordingTriggerBackend:
    """TriggerBackend fake that records every call in order."""

    def __init__(self):
        self.calls: List[Tuple[str, Optional[str]]] = []
        self.active = {}
        self.fail_creates = False
        self.fail_after: Optional[int] = None
        self.fail_cancels = False
        self._created = 0

    async def create_trigger(
        self, payload: TriggerPayload, fire_at: datetime, repeat: Optional[RepeatPolicy] = None
    ) -> str:
        if self.fail_creates or (self.fail_after is not None and self._created >= self.fail_after):
            raise RuntimeError("trigger backend unavailable")
        self._created += 1
        trigger_id = f"t{self._created}"
        self.active[trigger_id] = (payload, fire_at, repeat)
        self.calls.append(("create", trigger_id))
        return trigger_id

    async def cancel_trigger(self, trigger_id: str) -> None:
        self.calls.append(("cancel", trigger_id))
        if self.fail_cancels:
            raise RuntimeError("no such trigger")
        self.active.pop(trigger_id, None)

    async def cancel_all(self) -> None:
        self.calls.append(("cancel_all", None))
        self.active.clear()

    def created(self) -> List[str]:
        return [tid for op, tid in self.calls if op == "create"]

    def cancelled(self) -> List[str]:
        return [tid for op, tid in self.calls if op == "cancel"]

    def fire_times(self) -> List[datetime]:
        return sorted(fire_at for _, fire_at, _ in self.active.values())

    def reset_calls(self) -> None:
        self.calls.clear()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def backend() -> RecordingTriggerBackend:
    return RecordingTriggerBackend()


@pytest.fixture
def notifications(backend, clock) -> NotificationLifecycleManager:
    return NotificationLifecycleManager(backend, clock)


@pytest.fixture
def alarms(store, notifications, clock) -> AlarmManager:
    return AlarmManager(store, notifications, clock)


@pytest.fixture
def reminders(store, notifications, clock) -> ReminderManager:
    return ReminderManager(store, notifications, clock)
