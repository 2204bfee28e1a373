"""
main.py
───────
remindkit FastAPI service entry point.

Exposes:
  REST  /api/alarms          CRUD, toggle, snooze, soft-delete / restore
  REST  /api/reminders       CRUD, toggle, completion, cycle info
  REST  /api/trash/purge     drop expired tombstones
  REST  /api/events          notification events (delivered / press / dismissed)
  REST  /api/pending-alarm   the alarm the UI should open next
  REST  /api/triggers        triggers armed in the local scheduler
  WS    /ws                  real-time push of fired triggers

Run with `uvicorn remindkit.main:app` or the `remindkit` console script.
"""

from __future__ import annotations

import asyncio
import logging
import os
import platform
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from . import __version__
from .alarm_manager import AlarmManager
from .clock import Clock, SystemClock
from .config import Settings, get_settings
from .const import LOGGER
from .errors import PastScheduleError, TriggerCreationFailed
from .events import EventRouter, EventType, NotificationEvent
from .models import Alarm, AlarmCreate, AlarmUpdate, NotificationEventIn, Reminder, ReminderCreate, ReminderUpdate
from .notifications import NotificationLifecycleManager
from .reminder_manager import ReminderManager
from .scheduler import LocalTriggerScheduler, ScheduledTrigger
from .storage import JsonFileStore, KeyValueStore

# ── Fired-trigger feed ────────────────────────────────────────────────────────

# Raised by a send on a socket the client has already gone away from.
SEND_ERRORS = (WebSocketDisconnect, RuntimeError, OSError)


class TriggerFeed:
    """Pushes every fired trigger to the connected UI clients."""

    def __init__(self):
        self.clients: List[WebSocket] = []
        self._lock = asyncio.Lock()

    async def attach(self, ws: WebSocket) -> None:
        await ws.accept()
        async with self._lock:
            self.clients.append(ws)

    async def detach(self, ws: WebSocket) -> None:
        async with self._lock:
            if ws in self.clients:
                self.clients.remove(ws)

    async def publish(self, trigger: ScheduledTrigger) -> int:
        """Send the fired trigger to every client; returns how many got it."""
        message = {
            "event": "trigger_fired",
            "triggerId": trigger.id,
            "title": trigger.payload.title,
            "body": trigger.payload.body,
            "data": trigger.payload.data,
        }
        async with self._lock:
            alive = []
            for ws in self.clients:
                try:
                    await ws.send_json(message)
                except SEND_ERRORS as exc:
                    LOGGER.debug("Dropping websocket client: %r", exc)
                    continue
                alive.append(ws)
            self.clients = alive
        return len(alive)


# ── Service wiring ────────────────────────────────────────────────────────────

@dataclass
class Services:
    settings: Settings
    scheduler: LocalTriggerScheduler
    notifications: NotificationLifecycleManager
    alarms: AlarmManager
    reminders: ReminderManager
    events: EventRouter
    feed: TriggerFeed


def build_services(settings: Settings, store: KeyValueStore, clock: Clock) -> Services:
    feed = TriggerFeed()

    async def on_fire(trigger: ScheduledTrigger) -> None:
        await feed.publish(trigger)

    scheduler = LocalTriggerScheduler(clock, on_fire=on_fire, tick_seconds=settings.tick_seconds)
    notifications = NotificationLifecycleManager(
        scheduler, clock, completion_window=settings.completion_window
    )
    alarms = AlarmManager(store, notifications, clock)
    reminders = ReminderManager(store, notifications, clock, completion_window=settings.completion_window)
    events = EventRouter(alarms, reminders, clock, dedup_ttl=settings.dedup_ttl)
    return Services(settings, scheduler, notifications, alarms, reminders, events, feed)


def get_services(request: Request) -> Services:
    return request.app.state.services


def _found(entity, what: str):
    if not entity:
        raise HTTPException(status_code=404, detail=f"{what} not found")
    return entity


router = APIRouter(prefix="/api")


# ── Alarm endpoints ───────────────────────────────────────────────────────────

@router.get("/alarms")
def list_alarms(include_deleted: bool = False, svc: Services = Depends(get_services)):
    return [a.to_record() for a in svc.alarms.load_all(include_deleted=include_deleted)]


@router.post("/alarms", status_code=201)
async def create_alarm(body: AlarmCreate, svc: Services = Depends(get_services)):
    alarm = Alarm(**body.model_dump())
    return (await svc.alarms.add(alarm)).to_record()


@router.get("/alarms/{alarm_id}")
def get_alarm(alarm_id: str, svc: Services = Depends(get_services)):
    return _found(svc.alarms.get(alarm_id), "Alarm").to_record()


@router.patch("/alarms/{alarm_id}")
async def update_alarm(alarm_id: str, body: AlarmUpdate, svc: Services = Depends(get_services)):
    updated = await svc.alarms.update(alarm_id, **body.model_dump(exclude_unset=True))
    return _found(updated, "Alarm").to_record()


@router.post("/alarms/{alarm_id}/toggle")
async def toggle_alarm(alarm_id: str, svc: Services = Depends(get_services)):
    return _found(await svc.alarms.toggle(alarm_id), "Alarm").to_record()


@router.post("/alarms/{alarm_id}/snooze")
async def snooze_alarm(alarm_id: str, minutes: Optional[int] = None, svc: Services = Depends(get_services)):
    delay = timedelta(minutes=minutes) if minutes else svc.settings.snooze
    trigger_id = _found(await svc.alarms.snooze(alarm_id, delay), "Alarm")
    return {"triggerId": trigger_id}


@router.delete("/alarms/{alarm_id}", status_code=204)
async def delete_alarm(alarm_id: str, svc: Services = Depends(get_services)):
    _found(await svc.alarms.soft_delete(alarm_id), "Alarm")


@router.post("/alarms/{alarm_id}/restore")
async def restore_alarm(alarm_id: str, svc: Services = Depends(get_services)):
    return _found(await svc.alarms.restore(alarm_id), "Alarm").to_record()


@router.delete("/alarms/{alarm_id}/permanent", status_code=204)
async def purge_alarm(alarm_id: str, svc: Services = Depends(get_services)):
    _found(await svc.alarms.permanently_delete(alarm_id), "Alarm")


# ── Reminder endpoints ────────────────────────────────────────────────────────

@router.get("/reminders")
def list_reminders(include_deleted: bool = False, svc: Services = Depends(get_services)):
    return [r.to_record() for r in svc.reminders.load_all(include_deleted=include_deleted)]


@router.post("/reminders", status_code=201)
async def create_reminder(body: ReminderCreate, svc: Services = Depends(get_services)):
    reminder = Reminder(**body.model_dump())
    return (await svc.reminders.add(reminder)).to_record()


@router.get("/reminders/{reminder_id}")
def get_reminder(reminder_id: str, svc: Services = Depends(get_services)):
    return _found(svc.reminders.get(reminder_id), "Reminder").to_record()


@router.patch("/reminders/{reminder_id}")
async def update_reminder(reminder_id: str, body: ReminderUpdate, svc: Services = Depends(get_services)):
    updated = await svc.reminders.update(reminder_id, **body.model_dump(exclude_unset=True))
    return _found(updated, "Reminder").to_record()


@router.post("/reminders/{reminder_id}/toggle")
async def toggle_reminder(reminder_id: str, svc: Services = Depends(get_services)):
    return _found(await svc.reminders.toggle(reminder_id), "Reminder").to_record()


@router.post("/reminders/{reminder_id}/complete")
async def complete_reminder(reminder_id: str, svc: Services = Depends(get_services)):
    return _found(await svc.reminders.complete(reminder_id), "Reminder").to_record()


@router.post("/reminders/{reminder_id}/toggle-complete")
async def toggle_complete_reminder(reminder_id: str, svc: Services = Depends(get_services)):
    return _found(await svc.reminders.toggle_complete(reminder_id), "Reminder").to_record()


@router.get("/reminders/{reminder_id}/completable")
def reminder_completable(reminder_id: str, svc: Services = Depends(get_services)):
    reminder = _found(svc.reminders.get(reminder_id), "Reminder")
    return {
        "completable": svc.reminders.is_completable_now(reminder),
        "completedToday": svc.reminders.has_completed_today(reminder),
    }


@router.get("/reminders/{reminder_id}/cycle")
def reminder_cycle(reminder_id: str, svc: Services = Depends(get_services)):
    reminder = _found(svc.reminders.get(reminder_id), "Reminder")
    current, upcoming = svc.reminders.cycle_timestamps(reminder)
    return jsonable_encoder({"current": current, "next": upcoming})


@router.delete("/reminders/{reminder_id}", status_code=204)
async def delete_reminder(reminder_id: str, svc: Services = Depends(get_services)):
    _found(await svc.reminders.soft_delete(reminder_id), "Reminder")


@router.post("/reminders/{reminder_id}/restore")
async def restore_reminder(reminder_id: str, svc: Services = Depends(get_services)):
    return _found(await svc.reminders.restore(reminder_id), "Reminder").to_record()


@router.delete("/reminders/{reminder_id}/permanent", status_code=204)
async def purge_reminder(reminder_id: str, svc: Services = Depends(get_services)):
    _found(await svc.reminders.permanently_delete(reminder_id), "Reminder")


# ── Trash ─────────────────────────────────────────────────────────────────────

@router.post("/trash/purge")
async def purge_trash(svc: Services = Depends(get_services)):
    retention = svc.settings.retention
    return {
        "alarms": await svc.alarms.purge_older_than(retention),
        "reminders": await svc.reminders.purge_older_than(retention),
    }


# ── Notification events ───────────────────────────────────────────────────────

@router.post("/events")
async def notification_event(body: NotificationEventIn, svc: Services = Depends(get_services)):
    try:
        event_type = EventType(body.type)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Unknown event type {body.type!r}")
    pending = await svc.events.handle(
        NotificationEvent(type=event_type, notification_id=body.notification_id, data=body.data)
    )
    if pending is None:
        return {"pendingAlarm": None}
    return {"pendingAlarm": {"alarmId": pending.alarm_id, "notificationId": pending.notification_id}}


@router.get("/pending-alarm")
def get_pending_alarm(svc: Services = Depends(get_services)):
    pending = svc.events.pending.get()
    if pending is None:
        return {"pendingAlarm": None}
    return {"pendingAlarm": {"alarmId": pending.alarm_id, "notificationId": pending.notification_id}}


@router.delete("/pending-alarm", status_code=204)
def clear_pending_alarm(svc: Services = Depends(get_services)):
    svc.events.pending.clear()


@router.get("/triggers")
def list_triggers(svc: Services = Depends(get_services)):
    return jsonable_encoder([
        {
            "id": t.id,
            "fireAt": t.fire_at,
            "repeat": t.repeat.value if t.repeat else None,
            "title": t.payload.title,
            "data": t.payload.data,
        }
        for t in svc.scheduler.pending()
    ])


# ── Health / info ─────────────────────────────────────────────────────────────

@router.get("/health")
def health():
    return {
        "status": "ok",
        "version": __version__,
        "pid": os.getpid(),
        "platform": platform.system(),
        "python": platform.python_version(),
    }


# ── Error mapping ─────────────────────────────────────────────────────────────

async def _past_schedule(request: Request, exc: PastScheduleError):
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "fireAt": exc.fire_at.isoformat()},
    )


async def _trigger_failed(request: Request, exc: TriggerCreationFailed):
    return JSONResponse(
        status_code=503,
        content={"detail": str(exc), "entity": exc.entity.to_record()},
    )


async def _invalid_entity(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(exc.errors(include_url=False, include_context=False))},
    )


# ── App factory ───────────────────────────────────────────────────────────────

def create_app(
    settings: Optional[Settings] = None,
    store: Optional[KeyValueStore] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    settings = settings or get_settings()
    services = build_services(settings, store or JsonFileStore(settings.data_dir), clock or SystemClock())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(level=settings.log_level.upper())
        LOGGER.info("remindkit %s starting (pid=%s, data=%s)", __version__, os.getpid(), settings.data_dir)

        await services.alarms.purge_older_than(settings.retention)
        await services.reminders.purge_older_than(settings.retention)
        armed = await services.alarms.reschedule_all() + await services.reminders.reschedule_all()
        LOGGER.info("Re-armed %d entities", armed)
        services.scheduler.start()

        yield   # Application runs here

        await services.scheduler.stop()
        LOGGER.info("remindkit shut down")

    app = FastAPI(title="remindkit", version=__version__, lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(PastScheduleError, _past_schedule)
    app.add_exception_handler(TriggerCreationFailed, _trigger_failed)
    app.add_exception_handler(ValidationError, _invalid_entity)
    app.include_router(router)

    @app.websocket("/ws")
    async def trigger_feed(ws: WebSocket):
        await services.feed.attach(ws)
        try:
            while True:
                message = await ws.receive_json()
                if isinstance(message, dict) and message.get("type") == "ping":
                    await ws.send_json({"type": "pong"})
        except WebSocketDisconnect:
            LOGGER.debug("Websocket client closed")
        finally:
            await services.feed.detach(ws)

    return app


app = create_app()


# ── Entry point ───────────────────────────────────────────────────────────────

def run():
    import uvicorn
    uvicorn.run("remindkit.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
