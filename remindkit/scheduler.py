"""
scheduler.py
────────────
An in-process trigger backend.

Triggers live in a dict; one asyncio task wakes every `tick_seconds`, fires
whatever is due and re-arms repeating triggers (daily +1 day, weekly +7
days).  Fired triggers are handed to `on_fire`, which the HTTP service uses
to push them to connected clients.

Nothing is persisted: after a restart the managers re-create triggers from
the stored entities (EntityManager.reschedule_all).
"""

from __future__ import annotations

import asyncio
import contextlib
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional

from .clock import Clock, SystemClock
from .const import LOGGER
from .models import RepeatPolicy, TriggerPayload

_REPEAT_STEP = {
    RepeatPolicy.DAILY: timedelta(days=1),
    RepeatPolicy.WEEKLY: timedelta(days=7),
}


@dataclass
class ScheduledTrigger:
    id: str
    payload: TriggerPayload
    fire_at: datetime
    repeat: Optional[RepeatPolicy] = None


class LocalTriggerScheduler:
    def __init__(
        self,
        clock: Optional[Clock] = None,
        on_fire: Optional[Callable[[ScheduledTrigger], Awaitable[None]]] = None,
        tick_seconds: float = 1.0,
    ):
        self._clock = clock or SystemClock()
        self._on_fire = on_fire
        self._tick_seconds = tick_seconds
        self._triggers: Dict[str, ScheduledTrigger] = {}
        self._task: Optional[asyncio.Task] = None

    # ── Trigger API ───────────────────────────────────────────────────────────

    async def create_trigger(
        self, payload: TriggerPayload, fire_at: datetime, repeat: Optional[RepeatPolicy] = None
    ) -> str:
        trigger = ScheduledTrigger(id=str(uuid.uuid4()), payload=payload, fire_at=fire_at, repeat=repeat)
        self._triggers[trigger.id] = trigger
        return trigger.id

    async def cancel_trigger(self, trigger_id: str) -> None:
        self._triggers.pop(trigger_id, None)

    async def cancel_all(self) -> None:
        self._triggers.clear()

    def pending(self) -> List[ScheduledTrigger]:
        return sorted(self._triggers.values(), key=lambda t: t.fire_at)

    # ── Tick loop ─────────────────────────────────────────────────────────────

    async def tick(self) -> List[ScheduledTrigger]:
        """Fire every due trigger once; returns what fired."""
        now = self._clock.now()
        due = [t for t in self._triggers.values() if t.fire_at <= now]
        fired: List[ScheduledTrigger] = []

        for trigger in due:
            fired.append(ScheduledTrigger(trigger.id, trigger.payload, trigger.fire_at, trigger.repeat))
            if trigger.repeat is None:
                self._triggers.pop(trigger.id, None)
            else:
                step = _REPEAT_STEP[trigger.repeat]
                while trigger.fire_at <= now:
                    trigger.fire_at += step

        for trigger in fired:
            LOGGER.debug("Firing trigger %s (%s)", trigger.id, trigger.payload.title)
            if self._on_fire is None:
                continue
            try:
                await self._on_fire(trigger)
            except Exception:
                LOGGER.exception("on_fire callback failed for trigger %s", trigger.id)
        return fired

    async def _run(self) -> None:
        while True:
            await self.tick()
            await asyncio.sleep(self._tick_seconds)

    def start(self) -> None:
        """Start the background tick task on the running loop."""
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run(), name="trigger-ticker")

    async def stop(self) -> None:
        """Stop the tick task and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
