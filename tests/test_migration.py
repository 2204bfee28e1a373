"""Schema migration of persisted alarm and reminder records."""

from datetime import datetime

import pytest

from remindkit.errors import MalformedEntity
from remindkit.migration import migrate_alarm, migrate_all, migrate_reminder
from remindkit.models import AlarmMode, Weekday


def alarm_record(**overrides):
    record = {
        "id": "a1",
        "time": "07:30",
        "note": "",
        "enabled": True,
        "category": "general",
        "mode": "recurring",
        "days": ["Mon"],
        "private": False,
        "createdAt": "2024-06-01T09:00:00",
        "notificationIds": [],
    }
    record.update(overrides)
    return record


def reminder_record(**overrides):
    record = {
        "id": "r1",
        "text": "Water plants",
        "icon": "🪴",
        "completed": False,
        "private": False,
        "createdAt": "2024-06-01T09:00:00",
        "days": [],
        "recurring": False,
        "enabled": True,
        "pinned": False,
        "notificationIds": [],
        "completionHistory": [],
    }
    record.update(overrides)
    return record


class TestMigrateAlarm:
    def test_current_shape_is_unchanged(self):
        alarm, changed = migrate_alarm(alarm_record())
        assert not changed
        assert alarm.days == [Weekday.MON]

    def test_numeric_days_start_on_sunday(self):
        alarm, changed = migrate_alarm(alarm_record(days=[0, 1, 6]))
        assert changed
        assert alarm.days == [Weekday.SUN, Weekday.MON, Weekday.SAT]

    def test_boolean_recurring_becomes_mode(self):
        record = alarm_record(recurring=False)
        del record["mode"]
        alarm, changed = migrate_alarm(record)
        assert changed
        assert alarm.mode is AlarmMode.ONE_TIME
        assert "recurring" not in alarm.to_record()

    def test_legacy_daily_mode(self):
        alarm, changed = migrate_alarm(alarm_record(mode="daily", days=["Mon", "Tue"]))
        assert changed
        assert alarm.mode is AlarmMode.RECURRING
        assert alarm.days == []

    def test_backfills_notification_ids(self):
        record = alarm_record()
        del record["notificationIds"]
        alarm, changed = migrate_alarm(record)
        assert changed
        assert alarm.notification_ids == []

    def test_unknown_fields_survive(self):
        alarm, _ = migrate_alarm(alarm_record(sound="Chime", theme="dark"))
        record = alarm.to_record()
        assert record["sound"] == "Chime"
        assert record["theme"] == "dark"

    @pytest.mark.parametrize("missing", ["id", "time", "note", "enabled", "category"])
    def test_missing_required_field(self, missing):
        record = alarm_record()
        del record[missing]
        with pytest.raises(MalformedEntity):
            migrate_alarm(record)

    def test_wrong_type(self):
        with pytest.raises(MalformedEntity):
            migrate_alarm(alarm_record(enabled="yes"))

    def test_invalid_time(self):
        with pytest.raises(MalformedEntity):
            migrate_alarm(alarm_record(time="7:99"))

    def test_not_an_object(self):
        with pytest.raises(MalformedEntity):
            migrate_alarm(["a1"])

    @pytest.mark.parametrize("days", [5, "Mon", {"Mon": True}, True])
    def test_days_not_a_list(self, days):
        with pytest.raises(MalformedEntity):
            migrate_alarm(alarm_record(days=days))

    @pytest.mark.parametrize("days", [[9], [-1], [True]])
    def test_invalid_day_index(self, days):
        with pytest.raises(MalformedEntity):
            migrate_alarm(alarm_record(days=days))

    def test_backfills_created_at(self):
        record = alarm_record()
        del record["createdAt"]
        stamp = datetime(2024, 6, 13, 10, 0)
        alarm, changed = migrate_alarm(record, created_at=stamp)
        assert changed
        assert alarm.created_at == stamp
        assert alarm.to_record()["createdAt"] == "2024-06-13T10:00:00"


class TestMigrateReminder:
    def test_current_shape_is_unchanged(self):
        _, changed = migrate_reminder(reminder_record())
        assert not changed

    def test_backfills_bookkeeping(self):
        record = {
            "id": "r1",
            "text": "Water plants",
            "icon": "🪴",
            "completed": False,
            "private": False,
            "createdAt": "2024-06-01T09:00:00",
        }
        reminder, changed = migrate_reminder(record)
        assert changed
        assert reminder.notification_ids == []
        assert reminder.completion_history == []
        assert reminder.days == []
        assert reminder.recurring is False
        assert reminder.enabled is True

    def test_numeric_days(self):
        reminder, changed = migrate_reminder(reminder_record(recurring=True, days=[2, 4]))
        assert changed
        assert reminder.days == [Weekday.TUE, Weekday.THU]

    def test_legacy_single_id_is_kept(self):
        reminder, changed = migrate_reminder(reminder_record(notificationId="old-1"))
        assert not changed
        assert reminder.notification_id == "old-1"

    def test_missing_created_at(self):
        record = reminder_record()
        del record["createdAt"]
        with pytest.raises(MalformedEntity):
            migrate_reminder(record)


class TestMigrateAll:
    def test_drops_malformed_rows(self):
        rows = [alarm_record(id="a1"), {"id": "broken"}, alarm_record(id="a2"), "junk"]
        alarms, changed = migrate_all(rows, migrate_alarm)
        assert [a.id for a in alarms] == ["a1", "a2"]
        assert not changed

    def test_reports_change(self):
        rows = [alarm_record(id="a1"), alarm_record(id="a2", days=[3])]
        alarms, changed = migrate_all(rows, migrate_alarm)
        assert changed
        assert alarms[1].days == [Weekday.WED]

    def test_bad_days_row_does_not_sink_the_rest(self):
        rows = [alarm_record(id="a1"), alarm_record(id="bad", days=5), alarm_record(id="a2", days=[12])]
        alarms, changed = migrate_all(rows, migrate_alarm)
        assert [a.id for a in alarms] == ["a1"]
        assert not changed
