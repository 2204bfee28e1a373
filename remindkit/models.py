"""
models.py
─────────
Shared Pydantic data models: weekday / category enums, schedule specs,
completion history, the persisted Alarm and Reminder records and the API
request bodies built from them.

Persisted records use camelCase keys (the on-disk shape); attributes are
snake_case.  Unknown keys are display fields owned by other parts of the app
and are carried through untouched.
"""

from __future__ import annotations

import uuid
from datetime import date as Date, datetime
from enum import Enum
from typing import Annotated, Dict, FrozenSet, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ── Enums ─────────────────────────────────────────────────────────────────────

class Weekday(str, Enum):
    MON = "Mon"
    TUE = "Tue"
    WED = "Wed"
    THU = "Thu"
    FRI = "Fri"
    SAT = "Sat"
    SUN = "Sun"

    @property
    def ordinal(self) -> int:
        """Position matching datetime.weekday(): Mon=0 … Sun=6."""
        return _WEEKDAY_ORDINALS[self]

    @classmethod
    def from_ordinal(cls, n: int) -> "Weekday":
        return _ORDINAL_WEEKDAYS[n % 7]

    @classmethod
    def from_legacy_index(cls, n: int) -> "Weekday":
        """Old records stored days as 0=Sun … 6=Sat."""
        return cls.from_ordinal((n + 6) % 7)


_WEEKDAY_ORDINALS: Dict[Weekday, int] = {
    Weekday.MON: 0,
    Weekday.TUE: 1,
    Weekday.WED: 2,
    Weekday.THU: 3,
    Weekday.FRI: 4,
    Weekday.SAT: 5,
    Weekday.SUN: 6,
}
_ORDINAL_WEEKDAYS: Dict[int, Weekday] = {n: d for d, n in _WEEKDAY_ORDINALS.items()}

ALL_WEEKDAYS: FrozenSet[Weekday] = frozenset(Weekday)


class AlarmCategory(str, Enum):
    MEDS        = "meds"
    APPOINTMENT = "appointment"
    TASK        = "task"
    SELF_CARE   = "self-care"
    GENERAL     = "general"


class AlarmMode(str, Enum):
    RECURRING = "recurring"
    ONE_TIME  = "one-time"


class RepeatPolicy(str, Enum):
    DAILY  = "daily"
    WEEKLY = "weekly"


# ── Schedule specs ────────────────────────────────────────────────────────────

class TimeOfDay(BaseModel):
    model_config = ConfigDict(frozen=True)

    hour: int = Field(ge=0, le=23)
    minute: int = Field(ge=0, le=59)

    @classmethod
    def parse(cls, text: str) -> "TimeOfDay":
        """Parse "HH:MM" (24h)."""
        try:
            hh, mm = text.split(":")
            return cls(hour=int(hh), minute=int(mm))
        except (AttributeError, ValueError) as exc:
            raise ValueError(f"invalid time of day: {text!r}") from exc

    def on(self, day: Date) -> datetime:
        return datetime(day.year, day.month, day.day, self.hour, self.minute)

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


class Daily(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["daily"] = "daily"


class WeeklyDays(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["weekly"] = "weekly"
    days: FrozenSet[Weekday]

    @field_validator("days")
    @classmethod
    def partial_week(cls, v: FrozenSet[Weekday]) -> FrozenSet[Weekday]:
        if not v:
            raise ValueError("a weekly schedule needs at least one day")
        if v == ALL_WEEKDAYS:
            raise ValueError("all seven days is a daily schedule")
        return v


class OneTimeDate(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["once"] = "once"
    on: Date


class YearlyDate(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["yearly"] = "yearly"
    on: Date


Pattern = Annotated[
    Union[Daily, WeeklyDays, OneTimeDate, YearlyDate],
    Field(discriminator="kind"),
]


class ScheduleSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    time_of_day: Optional[TimeOfDay] = None
    pattern: Pattern

    @property
    def is_recurring(self) -> bool:
        return not isinstance(self.pattern, OneTimeDate)


def days_pattern(days) -> Union[Daily, WeeklyDays]:
    """Daily for no days or the full week, otherwise WeeklyDays."""
    days = frozenset(days)
    if not days or days == ALL_WEEKDAYS:
        return Daily()
    return WeeklyDays(days=days)


# ── Persisted records ─────────────────────────────────────────────────────────

class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    @field_validator("completed_at", "scheduled_for", "created_at", "deleted_at", check_fields=False)
    @classmethod
    def local_naive(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is not None:
            return v.astimezone().replace(tzinfo=None)
        return v

    @field_validator("time", "due_time", check_fields=False)
    @classmethod
    def check_time(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            TimeOfDay.parse(v)
        return v

    @field_validator("date", "due_date", check_fields=False)
    @classmethod
    def check_date(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            Date.fromisoformat(v)
        return v

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class CompletionEntry(_Record):
    completed_at: datetime
    scheduled_for: Optional[datetime] = None


class Alarm(_Record):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    time: str                                  # "HH:MM"
    nickname: Optional[str] = None
    note: str = ""
    quote: str = ""
    enabled: bool = True
    mode: AlarmMode = AlarmMode.RECURRING
    days: List[Weekday] = []                   # empty or all seven = daily
    date: Optional[str] = None                 # "YYYY-MM-DD", one-time only
    category: AlarmCategory = AlarmCategory.GENERAL
    icon: Optional[str] = None
    private: bool = False
    created_at: datetime = Field(default_factory=datetime.now)
    notification_ids: List[str] = []
    notification_id: Optional[str] = None      # deprecated single id
    deleted_at: Optional[datetime] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class Reminder(_Record):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    icon: str
    text: str
    nickname: Optional[str] = None
    private: bool = False
    completed: bool = False
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.now)
    due_date: Optional[str] = None             # "YYYY-MM-DD"
    due_time: Optional[str] = None             # "HH:MM"
    recurring: bool = False
    days: List[Weekday] = []
    enabled: bool = True
    pinned: bool = False
    notification_ids: List[str] = []
    notification_id: Optional[str] = None      # deprecated single id
    completion_history: List[CompletionEntry] = []
    deleted_at: Optional[datetime] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


# ── Trigger payload ───────────────────────────────────────────────────────────

class TriggerPayload(BaseModel):
    title: str
    body: str
    data: Dict[str, str] = {}


# ── API bodies ────────────────────────────────────────────────────────────────

class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AlarmCreate(_Body):
    time: str
    nickname: Optional[str] = None
    note: str = ""
    quote: str = ""
    enabled: bool = True
    mode: AlarmMode = AlarmMode.RECURRING
    days: List[Weekday] = []
    date: Optional[str] = None
    category: AlarmCategory = AlarmCategory.GENERAL
    icon: Optional[str] = None
    private: bool = False


class AlarmUpdate(_Body):
    time: Optional[str] = None
    nickname: Optional[str] = None
    note: Optional[str] = None
    quote: Optional[str] = None
    enabled: Optional[bool] = None
    mode: Optional[AlarmMode] = None
    days: Optional[List[Weekday]] = None
    date: Optional[str] = None
    category: Optional[AlarmCategory] = None
    icon: Optional[str] = None
    private: Optional[bool] = None


class ReminderCreate(_Body):
    icon: str = "📝"
    text: str
    nickname: Optional[str] = None
    private: bool = False
    due_date: Optional[str] = None
    due_time: Optional[str] = None
    recurring: bool = False
    days: List[Weekday] = []
    pinned: bool = False


class ReminderUpdate(_Body):
    icon: Optional[str] = None
    text: Optional[str] = None
    nickname: Optional[str] = None
    private: Optional[bool] = None
    due_date: Optional[str] = None
    due_time: Optional[str] = None
    recurring: Optional[bool] = None
    days: Optional[List[Weekday]] = None
    enabled: Optional[bool] = None
    pinned: Optional[bool] = None


class NotificationEventIn(_Body):
    type: str                                  # "delivered" | "press" | "dismissed" | "action_press"
    notification_id: Optional[str] = None
    data: Dict[str, str] = {}
