"""
const.py
────────
Package-wide constants and the shared logger.
"""

import logging
from datetime import timedelta

LOGGER = logging.getLogger(__package__)

# ── Storage keys ──────────────────────────────────────────────────────────────

STORAGE_KEY_ALARMS    = "alarms"
STORAGE_KEY_REMINDERS = "reminders"

# ── Defaults ──────────────────────────────────────────────────────────────────

DEFAULT_RETENTION            = timedelta(days=30)
DEFAULT_COMPLETION_WINDOW    = timedelta(hours=6)
DEFAULT_DEDUP_TTL            = timedelta(minutes=10)
DEFAULT_SNOOZE               = timedelta(minutes=10)
DEFAULT_PREVIEW_DURATION     = 3.0    # seconds

# Date-only yearly reminders may be completed this many days either side
DATE_ONLY_TOLERANCE_DAYS = 1

# ── Notification payload keys ─────────────────────────────────────────────────

DATA_ALARM_ID    = "alarmId"
DATA_REMINDER_ID = "reminderId"

DEFAULT_ALARM_BODY = "Time to do the thing!"
DEFAULT_ALARM_ICON = "⏰"
