"""Occurrence calculator: next / current instants, yearly rolling and trigger planning."""

from datetime import date, datetime, timedelta

import pytest
from pydantic import ValidationError

from remindkit.errors import PastScheduleError
from remindkit.models import (
    Daily,
    OneTimeDate,
    Reminder,
    RepeatPolicy,
    ScheduleSpec,
    TimeOfDay,
    Weekday,
    WeeklyDays,
    YearlyDate,
    days_pattern,
)
from remindkit.occurrence import (
    auto_assign_date,
    current_cycle_timestamp,
    next_cycle_timestamp,
    next_daily_timestamp,
    next_weekly_timestamp,
    next_yearly_date,
    one_time_timestamp,
    plan_occurrences,
    reminder_schedule,
    roll_yearly,
)

THURSDAY_10AM = datetime(2024, 6, 13, 10, 0)


def tod(text: str) -> TimeOfDay:
    return TimeOfDay.parse(text)


class TestTimeOfDay:
    def test_parse_and_format(self):
        assert str(tod("7:05")) == "07:05"

    @pytest.mark.parametrize("text", ["", "25:00", "12:60", "noon", "12"])
    def test_rejects_bad_input(self, text):
        with pytest.raises(ValueError):
            tod(text)


class TestNextDaily:
    def test_later_today(self):
        assert next_daily_timestamp(tod("10:01"), THURSDAY_10AM) == datetime(2024, 6, 13, 10, 1)

    def test_same_minute_is_tomorrow(self):
        assert next_daily_timestamp(tod("10:00"), THURSDAY_10AM) == datetime(2024, 6, 14, 10, 0)

    def test_always_within_a_day(self):
        for hour in range(24):
            result = next_daily_timestamp(TimeOfDay(hour=hour, minute=30), THURSDAY_10AM)
            assert THURSDAY_10AM < result <= THURSDAY_10AM + timedelta(days=1)


class TestNextWeekly:
    def test_next_monday(self):
        assert next_weekly_timestamp(tod("09:00"), Weekday.MON, THURSDAY_10AM) == datetime(2024, 6, 17, 9, 0)

    def test_later_today(self):
        assert next_weekly_timestamp(tod("11:00"), Weekday.THU, THURSDAY_10AM) == datetime(2024, 6, 13, 11, 0)

    def test_passed_today_is_next_week(self):
        assert next_weekly_timestamp(tod("09:00"), Weekday.THU, THURSDAY_10AM) == datetime(2024, 6, 20, 9, 0)

    def test_always_within_a_week(self):
        for day in Weekday:
            for text in ("00:00", "10:00", "23:59"):
                result = next_weekly_timestamp(tod(text), day, THURSDAY_10AM)
                assert THURSDAY_10AM < result <= THURSDAY_10AM + timedelta(days=7)
                assert result.weekday() == day.ordinal


class TestOneTime:
    def test_future(self):
        assert one_time_timestamp(tod("09:00"), date(2024, 6, 14), THURSDAY_10AM) == datetime(2024, 6, 14, 9, 0)

    def test_past_raises(self):
        with pytest.raises(PastScheduleError) as exc_info:
            one_time_timestamp(tod("09:00"), date(2024, 6, 13), THURSDAY_10AM)
        assert exc_info.value.fire_at == datetime(2024, 6, 13, 9, 0)


class TestCycleTimestamps:
    def test_weekly_current_cycle_is_latest_selected_day(self):
        spec = ScheduleSpec(time_of_day=tod("09:00"), pattern=WeeklyDays(days={Weekday.MON, Weekday.WED}))
        assert current_cycle_timestamp(spec, THURSDAY_10AM) == datetime(2024, 6, 12, 9, 0)

    def test_weekly_current_cycle_counts_today_before_time(self):
        spec = ScheduleSpec(time_of_day=tod("18:00"), pattern=WeeklyDays(days={Weekday.THU}))
        assert current_cycle_timestamp(spec, THURSDAY_10AM) == datetime(2024, 6, 13, 18, 0)

    def test_daily_current_cycle_is_today_even_when_ahead(self):
        spec = ScheduleSpec(time_of_day=tod("20:00"), pattern=Daily())
        assert current_cycle_timestamp(spec, THURSDAY_10AM) == datetime(2024, 6, 13, 20, 0)

    def test_next_weekly_cycle_is_nearest_day(self):
        spec = ScheduleSpec(time_of_day=tod("09:00"), pattern=WeeklyDays(days={Weekday.MON, Weekday.FRI}))
        assert next_cycle_timestamp(spec, THURSDAY_10AM) == datetime(2024, 6, 14, 9, 0)

    def test_yearly_cycles_are_the_dated_instant(self):
        spec = ScheduleSpec(time_of_day=tod("08:30"), pattern=YearlyDate(on=date(2024, 12, 25)))
        assert current_cycle_timestamp(spec, THURSDAY_10AM) == datetime(2024, 12, 25, 8, 30)
        assert next_cycle_timestamp(spec, THURSDAY_10AM) == datetime(2024, 12, 25, 8, 30)

    def test_untimed_has_no_cycle(self):
        spec = ScheduleSpec(pattern=Daily())
        assert current_cycle_timestamp(spec, THURSDAY_10AM) is None
        assert next_cycle_timestamp(spec, THURSDAY_10AM) is None


class TestDates:
    def test_auto_assign_today_when_ahead(self):
        assert auto_assign_date(tod("10:01"), THURSDAY_10AM) == date(2024, 6, 13)

    def test_auto_assign_tomorrow_for_current_minute(self):
        assert auto_assign_date(tod("10:00"), THURSDAY_10AM + timedelta(seconds=30)) == date(2024, 6, 14)

    def test_leap_day_clamps(self):
        assert roll_yearly(date(2024, 2, 29)) == date(2025, 2, 28)

    def test_next_yearly_steps_from_original_date(self):
        assert next_yearly_date(date(2024, 2, 29), tod("09:00"), datetime(2025, 3, 1)) == date(2026, 2, 28)
        assert next_yearly_date(date(2024, 2, 29), tod("09:00"), datetime(2027, 3, 1)) == date(2028, 2, 29)

    def test_next_yearly_keeps_a_future_date(self):
        assert next_yearly_date(date(2024, 7, 1), tod("09:00"), THURSDAY_10AM) == date(2024, 7, 1)

    def test_next_yearly_date_only_includes_today(self):
        assert next_yearly_date(date(2023, 6, 13), None, THURSDAY_10AM) == date(2024, 6, 13)


class TestPatterns:
    def test_full_week_is_daily(self):
        assert isinstance(days_pattern(list(Weekday)), Daily)

    def test_no_days_is_daily(self):
        assert isinstance(days_pattern([]), Daily)

    def test_partial_week(self):
        assert days_pattern([Weekday.MON]) == WeeklyDays(days={Weekday.MON})

    def test_weekly_needs_days(self):
        with pytest.raises(ValidationError):
            WeeklyDays(days=frozenset())

    def test_untimed_one_off_reminder_has_no_schedule(self):
        reminder = Reminder(icon="📝", text="Buy milk")
        assert reminder_schedule(reminder, THURSDAY_10AM) is None

    def test_recurring_reminder_with_date_is_yearly(self):
        reminder = Reminder(icon="🎂", text="Birthday", recurring=True, due_date="2024-09-01", due_time="09:00")
        spec = reminder_schedule(reminder, THURSDAY_10AM)
        assert spec.pattern == YearlyDate(on=date(2024, 9, 1))


class TestPlanOccurrences:
    def test_weekly_one_trigger_per_day(self):
        spec = ScheduleSpec(
            time_of_day=tod("09:00"),
            pattern=WeeklyDays(days={Weekday.FRI, Weekday.MON, Weekday.WED}),
        )
        plan = plan_occurrences(spec, THURSDAY_10AM)
        assert [o.day for o in plan] == [Weekday.MON, Weekday.WED, Weekday.FRI]
        assert all(o.repeat is RepeatPolicy.WEEKLY for o in plan)
        assert [o.fire_at for o in plan] == [
            datetime(2024, 6, 17, 9, 0),
            datetime(2024, 6, 19, 9, 0),
            datetime(2024, 6, 14, 9, 0),
        ]

    def test_daily_single_repeating_trigger(self):
        plan = plan_occurrences(ScheduleSpec(time_of_day=tod("08:00"), pattern=Daily()), THURSDAY_10AM)
        assert len(plan) == 1
        assert plan[0].repeat is RepeatPolicy.DAILY
        assert plan[0].fire_at == datetime(2024, 6, 14, 8, 0)

    def test_one_time_past_raises(self):
        spec = ScheduleSpec(time_of_day=tod("09:00"), pattern=OneTimeDate(on=date(2024, 6, 13)))
        with pytest.raises(PastScheduleError):
            plan_occurrences(spec, THURSDAY_10AM)

    def test_past_yearly_plans_nothing(self):
        spec = ScheduleSpec(time_of_day=tod("09:00"), pattern=YearlyDate(on=date(2024, 1, 1)))
        assert plan_occurrences(spec, THURSDAY_10AM) == []

    def test_skip_current_cycle_inside_window(self):
        spec = ScheduleSpec(time_of_day=tod("12:00"), pattern=Daily())
        plan = plan_occurrences(spec, THURSDAY_10AM, skip_current_cycle=True)
        assert plan[0].fire_at == datetime(2024, 6, 14, 12, 0)

    def test_skip_current_cycle_outside_window_is_ignored(self):
        spec = ScheduleSpec(time_of_day=tod("20:00"), pattern=Daily())
        plan = plan_occurrences(spec, THURSDAY_10AM, skip_current_cycle=True)
        assert plan[0].fire_at == datetime(2024, 6, 13, 20, 0)

    def test_untimed_plans_nothing(self):
        assert plan_occurrences(ScheduleSpec(pattern=Daily()), THURSDAY_10AM) == []
