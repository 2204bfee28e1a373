"""
errors.py
─────────
Exceptions raised by the scheduling core.

Not-found lookups are not errors here: managers return None / False.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any


class RemindkitError(Exception):
    """Base class for all remindkit errors."""


class PastScheduleError(RemindkitError):
    """A one-time schedule resolved to an instant that is not in the future."""

    def __init__(self, fire_at: datetime, now: datetime):
        self.fire_at = fire_at
        self.now = now
        super().__init__(
            f"Scheduled time {fire_at.isoformat()} is not after {now.isoformat()}"
        )


class TriggerCreationFailed(RemindkitError):
    """
    The trigger backend refused to create a trigger.

    The entity has already been persisted disabled with no trigger ids;
    it travels on the exception so callers can show it.
    """

    def __init__(self, entity: Any):
        self.entity = entity
        super().__init__(f"Could not schedule notifications for {entity.id}")


class MalformedEntity(RemindkitError):
    """A persisted record is missing required fields or has the wrong types."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)
