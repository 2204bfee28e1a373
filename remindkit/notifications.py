"""
notifications.py
────────────────
Notification lifecycle: keeps the trigger ids stored on an alarm or reminder
in step with its schedule.

Every schedule change goes cancel-then-create:
  1. plan the new occurrences (a passed one-time schedule fails here, before
     any trigger call),
  2. cancel every id the entity holds (best-effort),
  3. create one trigger per occurrence,
  4. hand back the entity carrying the new ids for the caller to persist.

If the backend refuses a trigger the entity comes back disabled with no ids,
riding on a TriggerCreationFailed.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional, Protocol, Union

from .clock import Clock, SystemClock
from .const import (
    DATA_ALARM_ID,
    DATA_REMINDER_ID,
    DEFAULT_ALARM_BODY,
    DEFAULT_ALARM_ICON,
    DEFAULT_COMPLETION_WINDOW,
    DEFAULT_PREVIEW_DURATION,
    DEFAULT_SNOOZE,
    LOGGER,
)
from .errors import PastScheduleError, TriggerCreationFailed
from .models import Alarm, Reminder, RepeatPolicy, TriggerPayload
from .occurrence import Occurrence, alarm_schedule, plan_occurrences, reminder_schedule
from .recurrence import has_completed_today

Entity = Union[Alarm, Reminder]


class TriggerBackend(Protocol):
    """The platform notification scheduler."""

    async def create_trigger(
        self, payload: TriggerPayload, fire_at: datetime, repeat: Optional[RepeatPolicy]
    ) -> str: ...

    async def cancel_trigger(self, trigger_id: str) -> None: ...

    async def cancel_all(self) -> None: ...


# ── Guards ────────────────────────────────────────────────────────────────────

class InitOnce:
    """Runs an async initializer the first time ensure() is awaited."""

    def __init__(self, initializer: Optional[Callable[[], Awaitable[None]]] = None):
        self._initializer = initializer
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    async def ensure(self) -> None:
        if self._done:
            return
        if self._initializer is not None:
            await self._initializer()
        self._done = True


class CallSequence:
    """
    Monotonic call tokens.  Taking a new token invalidates every earlier one,
    so a continuation only proceeds while its token is still current.
    """

    def __init__(self):
        self._latest = 0

    def next(self) -> int:
        self._latest += 1
        return self._latest

    def is_current(self, token: int) -> bool:
        return token == self._latest


# ── Payloads ──────────────────────────────────────────────────────────────────

def alarm_payload(alarm: Alarm) -> TriggerPayload:
    category = alarm.category.value.upper()
    title = f"{alarm.icon or DEFAULT_ALARM_ICON} {category}"
    body = alarm.nickname or alarm.icon or DEFAULT_ALARM_BODY
    return TriggerPayload(title=title, body=body, data={DATA_ALARM_ID: alarm.id})


def reminder_payload(reminder: Reminder) -> TriggerPayload:
    if reminder.private:
        body = reminder.nickname or "Private reminder"
    else:
        body = reminder.text
    return TriggerPayload(
        title=f"{reminder.icon} Reminder",
        body=body,
        data={DATA_REMINDER_ID: reminder.id},
    )


def held_ids(entity: Entity) -> List[str]:
    """Trigger ids on the entity, folding in the deprecated single id."""
    ids = list(entity.notification_ids)
    if entity.notification_id and entity.notification_id not in ids:
        ids.append(entity.notification_id)
    return ids


def should_be_active(entity: Entity) -> bool:
    if not entity.enabled or entity.deleted_at is not None:
        return False
    if isinstance(entity, Reminder) and entity.completed:
        return False
    return True


# ── Manager ───────────────────────────────────────────────────────────────────

class NotificationLifecycleManager:
    def __init__(
        self,
        backend: TriggerBackend,
        clock: Optional[Clock] = None,
        *,
        completion_window: timedelta = DEFAULT_COMPLETION_WINDOW,
        channel_setup: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self._backend = backend
        self._clock = clock or SystemClock()
        self._window = completion_window
        self._channel = InitOnce(channel_setup)
        self._previews = CallSequence()
        self._preview_id: Optional[str] = None

    # ── Cancellation (best-effort) ────────────────────────────────────────────

    async def cancel_trigger(self, trigger_id: str) -> None:
        """
        Cancel one trigger.  Best-effort by contract: an id the backend no
        longer knows, or a backend error, is logged and discarded.
        """
        try:
            await self._backend.cancel_trigger(trigger_id)
        except Exception as exc:
            LOGGER.warning("Discarded cancel failure for trigger %s: %s", trigger_id, exc)

    async def cancel_triggers(self, trigger_ids: List[str]) -> None:
        for trigger_id in trigger_ids:
            await self.cancel_trigger(trigger_id)

    async def cancel_all(self) -> None:
        try:
            await self._backend.cancel_all()
        except Exception as exc:
            LOGGER.warning("Discarded cancel-all failure: %s", exc)

    # ── Scheduling ────────────────────────────────────────────────────────────

    def plan(self, entity: Entity, now: datetime, *, skip_current_cycle: bool = False) -> List[Occurrence]:
        if isinstance(entity, Alarm):
            spec = alarm_schedule(entity, now)
        else:
            spec = reminder_schedule(entity, now)
            # a cycle already credited today is not re-armed
            if entity.recurring and has_completed_today(entity.completion_history, now):
                skip_current_cycle = True
        if spec is None:
            return []
        return plan_occurrences(spec, now, skip_current_cycle=skip_current_cycle, window=self._window)

    async def schedule_alarm(self, alarm: Alarm, *, skip_current_cycle: bool = False) -> List[str]:
        """Create the alarm's triggers and return their ids.  Does not cancel."""
        plan = self.plan(alarm, self._clock.now(), skip_current_cycle=skip_current_cycle)
        return await self._create(alarm_payload(alarm), plan)

    async def schedule_reminder(self, reminder: Reminder, *, skip_current_cycle: bool = False) -> List[str]:
        """Create the reminder's triggers and return their ids.  Does not cancel."""
        plan = self.plan(reminder, self._clock.now(), skip_current_cycle=skip_current_cycle)
        return await self._create(reminder_payload(reminder), plan)

    async def _create(self, payload: TriggerPayload, plan: List[Occurrence]) -> List[str]:
        if not plan:
            return []
        await self._channel.ensure()
        ids: List[str] = []
        try:
            for occurrence in plan:
                trigger_id = await self._backend.create_trigger(payload, occurrence.fire_at, occurrence.repeat)
                LOGGER.debug("Created trigger %s at %s (%s)", trigger_id, occurrence.fire_at, occurrence.repeat)
                ids.append(trigger_id)
        except Exception:
            # roll back a partial set
            await self.cancel_triggers(ids)
            raise
        return ids

    async def sync(self, entity: Entity, *, strict: bool = True, skip_current_cycle: bool = False) -> Entity:
        """
        Bring the entity's triggers in line with its schedule and return the
        updated (unpersisted) entity.

        strict: a passed one-time schedule raises PastScheduleError before any
        trigger is touched.  Otherwise the entity is released and disabled.
        """
        now = self._clock.now()
        plan: List[Occurrence] = []
        disable = False
        if should_be_active(entity):
            try:
                plan = self.plan(entity, now, skip_current_cycle=skip_current_cycle)
            except PastScheduleError as exc:
                if strict:
                    raise
                LOGGER.info("%s %s is past its time (%s); disabling", type(entity).__name__, entity.id, exc.fire_at)
                disable = True

        await self.cancel_triggers(held_ids(entity))

        payload = alarm_payload(entity) if isinstance(entity, Alarm) else reminder_payload(entity)
        try:
            ids = await self._create(payload, plan)
        except Exception as exc:
            LOGGER.warning("Trigger creation failed for %s %s: %s", type(entity).__name__, entity.id, exc)
            failed = entity.model_copy(update={"enabled": False, "notification_ids": [], "notification_id": None})
            raise TriggerCreationFailed(failed) from exc

        update = {"notification_ids": ids, "notification_id": None}
        if disable:
            update["enabled"] = False
        LOGGER.info("%s %s now holds %d trigger(s)", type(entity).__name__, entity.id, len(ids))
        return entity.model_copy(update=update)

    async def release(self, entity: Entity) -> Entity:
        """Cancel everything the entity holds and return it with no ids."""
        await self.cancel_triggers(held_ids(entity))
        return entity.model_copy(update={"notification_ids": [], "notification_id": None})

    # ── Transient triggers ────────────────────────────────────────────────────

    async def snooze(self, alarm: Alarm, delay: timedelta = DEFAULT_SNOOZE) -> str:
        """One-shot trigger `delay` from now.  Not recorded on the alarm."""
        fire_at = self._clock.now() + delay
        await self._channel.ensure()
        trigger_id = await self._backend.create_trigger(alarm_payload(alarm), fire_at, None)
        LOGGER.info("Snoozed alarm %s until %s", alarm.id, fire_at)
        return trigger_id

    async def preview(
        self, payload: TriggerPayload, duration: float = DEFAULT_PREVIEW_DURATION
    ) -> Optional[str]:
        """
        Fire `payload` now and withdraw it after `duration` seconds.

        A newer preview supersedes this one: if that happens while the
        trigger is being created, the trigger is withdrawn at once and None
        is returned.
        """
        token = self._previews.next()
        if self._preview_id is not None:
            await self.cancel_trigger(self._preview_id)
            self._preview_id = None

        await self._channel.ensure()
        trigger_id = await self._backend.create_trigger(payload, self._clock.now(), None)
        if not self._previews.is_current(token):
            await self.cancel_trigger(trigger_id)
            return None

        self._preview_id = trigger_id
        await asyncio.sleep(duration)
        if self._previews.is_current(token):
            await self.cancel_trigger(trigger_id)
            self._preview_id = None
        return trigger_id

    async def stop_preview(self) -> None:
        self._previews.next()
        if self._preview_id is not None:
            await self.cancel_trigger(self._preview_id)
            self._preview_id = None
