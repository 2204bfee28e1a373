"""
entity_manager.py
─────────────────
Shared CRUD over one persisted JSON array of entities.

Every mutation reads the whole array, applies one change and writes the whole
array back.  Mutations that affect a schedule go through the notification
manager first, so the stored trigger ids always describe the live triggers:

  - PastScheduleError leaves storage untouched
  - TriggerCreationFailed persists the disabled entity, then re-raises
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import Any, Callable, Generic, List, Optional, Tuple, TypeVar

from .clock import Clock, SystemClock
from .const import DEFAULT_RETENTION, LOGGER
from .errors import TriggerCreationFailed
from .migration import migrate_all
from .notifications import NotificationLifecycleManager, held_ids, should_be_active
from .storage import KeyValueStore

E = TypeVar("E")


class EntityManager(Generic[E]):
    storage_key: str = ""
    migrate: Callable[[Any], Tuple[E, bool]]

    def __init__(
        self,
        store: KeyValueStore,
        notifications: NotificationLifecycleManager,
        clock: Optional[Clock] = None,
    ):
        self._store = store
        self._notifications = notifications
        self._clock = clock or SystemClock()

    @property
    def notifications(self) -> NotificationLifecycleManager:
        return self._notifications

    # ── Load / save ───────────────────────────────────────────────────────────

    def _read(self) -> List[E]:
        raw = self._store.get(self.storage_key)
        if not raw:
            return []
        try:
            rows = json.loads(raw)
        except json.JSONDecodeError:
            LOGGER.warning("Stored %s are not valid JSON; treating as empty", self.storage_key)
            return []
        if not isinstance(rows, list):
            LOGGER.warning("Stored %s are not a list; treating as empty", self.storage_key)
            return []

        entities, changed = migrate_all(rows, self._migrate)
        if changed:
            LOGGER.info("Migrated stored %s; writing back", self.storage_key)
            self.save(entities)
        return entities

    def _migrate(self, raw: Any) -> Tuple[E, bool]:
        return type(self).migrate(raw)

    def load_all(self, include_deleted: bool = False) -> List[E]:
        entities = self._read()
        if include_deleted:
            return entities
        return [e for e in entities if e.deleted_at is None]

    def save(self, entities: List[E]) -> None:
        rows = [e.to_record() for e in entities]
        self._store.set(self.storage_key, json.dumps(rows, ensure_ascii=False))

    def get(self, entity_id: str) -> Optional[E]:
        """Look up by id, tombstoned entities included."""
        for entity in self._read():
            if entity.id == entity_id:
                return entity
        return None

    def _commit(self, entity: E) -> E:
        entities = self._read()
        for i, existing in enumerate(entities):
            if existing.id == entity.id:
                entities[i] = entity
                break
        else:
            entities.append(entity)
        self.save(entities)
        return entity

    # ── Scheduling ────────────────────────────────────────────────────────────

    def _prepare(self, entity: E) -> E:
        """Hook for subclasses to fill derived fields before scheduling."""
        return entity

    async def _resync(self, entity: E, *, strict: bool = True, skip_current_cycle: bool = False) -> E:
        try:
            updated = await self._notifications.sync(
                entity, strict=strict, skip_current_cycle=skip_current_cycle
            )
        except TriggerCreationFailed as exc:
            self._commit(exc.entity)
            raise
        return self._commit(updated)

    async def reschedule_all(self) -> int:
        """
        Re-create triggers for every active entity, e.g. after the trigger
        backend lost its state.  Returns how many entities hold triggers.
        """
        entities = self._read()
        scheduled = 0
        for i, entity in enumerate(entities):
            if not should_be_active(entity):
                continue
            try:
                entities[i] = await self._notifications.sync(entity, strict=False)
            except TriggerCreationFailed as exc:
                entities[i] = exc.entity
                continue
            if entities[i].notification_ids:
                scheduled += 1
        self.save(entities)
        return scheduled

    # ── CRUD ──────────────────────────────────────────────────────────────────

    async def add(self, entity: E) -> E:
        entity = self._prepare(entity)
        return await self._resync(entity)

    async def update(self, entity_id: str, **changes) -> Optional[E]:
        current = self.get(entity_id)
        if current is None:
            return None
        edited = type(current).model_validate({**current.model_dump(), **changes})
        return await self._resync(self._prepare(edited))

    async def toggle(self, entity_id: str) -> Optional[E]:
        current = self.get(entity_id)
        if current is None:
            return None
        toggled = current.model_copy(update={"enabled": not current.enabled})
        return await self._resync(self._prepare(toggled))

    async def soft_delete(self, entity_id: str) -> bool:
        current = self.get(entity_id)
        if current is None:
            return False
        released = await self._notifications.release(current)
        tombstoned = released.model_copy(update={"deleted_at": self._clock.now()})
        self._commit(tombstoned)
        LOGGER.info("Soft-deleted %s %s", self.storage_key, entity_id)
        return True

    async def restore(self, entity_id: str) -> Optional[E]:
        current = self.get(entity_id)
        if current is None:
            return None
        restored = current.model_copy(update={"deleted_at": None})
        return await self._resync(restored, strict=False)

    async def permanently_delete(self, entity_id: str) -> bool:
        entities = self._read()
        kept = [e for e in entities if e.id != entity_id]
        if len(kept) == len(entities):
            return False
        for entity in entities:
            if entity.id == entity_id:
                await self._notifications.cancel_triggers(held_ids(entity))
        self.save(kept)
        return True

    async def purge_older_than(self, retention: timedelta = DEFAULT_RETENTION, now: Optional[datetime] = None) -> int:
        """Permanently drop tombstones older than `retention`."""
        now = now or self._clock.now()
        entities = self._read()
        kept: List[E] = []
        purged = 0
        for entity in entities:
            if entity.deleted_at is not None and now - entity.deleted_at > retention:
                await self._notifications.cancel_triggers(held_ids(entity))
                purged += 1
            else:
                kept.append(entity)
        if purged:
            self.save(kept)
            LOGGER.info("Purged %d deleted %s", purged, self.storage_key)
        return purged
