"""
remindkit
─────────
Alarm and reminder scheduling: occurrence math, recurrence cycles and the
notification-trigger bookkeeping that keeps persisted ids in step with them.
"""

__version__ = "1.0.0"
