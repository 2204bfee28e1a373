"""
migration.py
────────────
Schema migration for persisted records.

migrate_alarm / migrate_reminder are pure: raw dict in, (entity, changed)
out.  A record missing a required field (or carrying the wrong type) raises
MalformedEntity.  Records written by older versions are brought forward:

  - numeric day lists (0=Sun … 6=Sat) become weekday names
  - an alarm's boolean `recurring` becomes `mode`; the old "daily" mode
    becomes a recurring alarm with no day filter
  - missing bookkeeping fields (notificationIds, completionHistory, days,
    recurring, enabled, private, pinned, an alarm's createdAt) are backfilled

The legacy single `notificationId` is left alone here; the notification
manager folds it in the first time it touches the entity.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from pydantic import ValidationError

from .const import LOGGER
from .errors import MalformedEntity
from .models import Alarm, AlarmMode, Reminder, Weekday

E = TypeVar("E")

REQUIRED_ALARM_FIELDS: Dict[str, type] = {
    "id": str,
    "time": str,
    "note": str,
    "enabled": bool,
    "category": str,
}

REQUIRED_REMINDER_FIELDS: Dict[str, type] = {
    "id": str,
    "text": str,
    "icon": str,
    "completed": bool,
    "private": bool,
    "createdAt": str,
}


def _require(raw: Any, required: Dict[str, type]) -> None:
    if not isinstance(raw, dict):
        raise MalformedEntity("record is not an object")
    for key, kind in required.items():
        if not isinstance(raw.get(key), kind):
            raise MalformedEntity(f"{key!r} is missing or not a {kind.__name__}")


def _migrate_days(record: Dict[str, Any]) -> bool:
    days = record.get("days")
    if days is None:
        record["days"] = []
        return True
    if not isinstance(days, list):
        raise MalformedEntity("'days' is not a list")
    for d in days:
        if isinstance(d, bool) or (isinstance(d, int) and not 0 <= d <= 6):
            raise MalformedEntity(f"invalid day index {d!r}")
    if any(isinstance(d, int) for d in days):
        record["days"] = [
            Weekday.from_legacy_index(d).value if isinstance(d, int) else d
            for d in days
        ]
        return True
    return False


def _backfill(record: Dict[str, Any], defaults: Dict[str, Any]) -> bool:
    changed = False
    for key, value in defaults.items():
        if key not in record:
            record[key] = value
            changed = True
    return changed


def _validate(model, record: Dict[str, Any]):
    try:
        return model.model_validate(record)
    except ValidationError as exc:
        raise MalformedEntity(f"{record.get('id')}: {exc.error_count()} invalid field(s)") from exc


def migrate_alarm(raw: Any, created_at: Optional[datetime] = None) -> Tuple[Alarm, bool]:
    """`created_at` stamps records written before alarms carried one."""
    _require(raw, REQUIRED_ALARM_FIELDS)
    record = dict(raw)
    changed = False

    if "mode" not in record:
        recurring = record.pop("recurring", True)
        record["mode"] = (AlarmMode.RECURRING if recurring else AlarmMode.ONE_TIME).value
        changed = True
    elif "recurring" in record:
        del record["recurring"]
        changed = True

    if record["mode"] == "daily":
        record["mode"] = AlarmMode.RECURRING.value
        record["days"] = []
        changed = True

    changed |= _migrate_days(record)
    changed |= _backfill(record, {
        "notificationIds": [],
        "private": False,
        "createdAt": (created_at or datetime.now()).isoformat(),
    })
    return _validate(Alarm, record), changed


def migrate_reminder(raw: Any) -> Tuple[Reminder, bool]:
    _require(raw, REQUIRED_REMINDER_FIELDS)
    record = dict(raw)
    changed = _migrate_days(record)
    changed |= _backfill(record, {
        "notificationIds": [],
        "completionHistory": [],
        "recurring": False,
        "enabled": True,
        "pinned": False,
    })
    return _validate(Reminder, record), changed


def migrate_all(rows: List[Any], migrate: Callable[[Any], Tuple[E, bool]]) -> Tuple[List[E], bool]:
    """
    Migrate every row.  Malformed rows are dropped (logged at debug level);
    the flag says whether any kept row needed changes.
    """
    entities: List[E] = []
    changed = False
    for row in rows:
        try:
            entity, row_changed = migrate(row)
        except MalformedEntity as exc:
            LOGGER.debug("Dropping malformed record: %s", exc.reason)
            continue
        entities.append(entity)
        changed |= row_changed
    return entities, changed
