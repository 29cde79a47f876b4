from __future__ import annotations

from datetime import date, time

import pytest

from shiftcycle.engine import ScheduleComposer
from shiftcycle.engine.composer import ShiftEntry
from shiftcycle.evaluation import (
    USER_SUMMARY_COLUMNS,
    entry_hours,
    schedule_stats,
    user_day_dataframe,
    user_summary,
)
from shiftcycle.scheduling.timeline import default_timeline
from shiftcycle.snapshot import load_snapshot


@pytest.fixture
def snapshot(demo_snapshot_path):
    return load_snapshot(demo_snapshot_path)


@pytest.fixture
def composer(snapshot) -> ScheduleComposer:
    return ScheduleComposer.from_snapshot(snapshot)


def test_rotation_user_week(composer, snapshot):
    result = composer.compose_range("alice", date(2024, 1, 1), date(2024, 1, 7))
    stats = schedule_stats(result, snapshot.timeline_or_default(), user_id="alice")
    assert (stats.start_date, stats.end_date) == (date(2024, 1, 1), date(2024, 1, 7))
    assert stats.total_days == 7
    assert stats.working_days == 4
    assert stats.rest_days == 3
    assert stats.total_shifts == 4
    assert stats.total_hours == pytest.approx(32.0)
    assert stats.shift_distribution == {"afternoon": 4}
    assert stats.max_daily_hours == pytest.approx(8.0)
    assert stats.min_daily_hours == 0.0
    assert stats.average_hours_per_working_day == pytest.approx(8.0)
    assert stats.average_hours_per_day == pytest.approx(32 / 7)
    assert stats.working_day_percentage == pytest.approx(400 / 7)


def test_reduced_shift_counts_its_window(composer, snapshot):
    result = composer.compose_range("erin", date(2024, 1, 1), date(2024, 1, 3))
    stats = schedule_stats(result, snapshot.timeline_or_default(), user_id="erin")
    assert stats.total_hours == pytest.approx(14.0)
    assert stats.shift_distribution == {"morning": 1, "night": 1}
    assert stats.max_daily_hours == pytest.approx(8.0)
    assert stats.min_daily_hours == 0.0


def test_all_users_on_one_day(composer, snapshot):
    result = composer.compose_users(snapshot.user_ids(), date(2024, 1, 1), date(2024, 1, 1))
    stats = schedule_stats(result, snapshot.timeline_or_default())
    assert stats.user_id is None
    assert stats.working_days == 1
    assert stats.total_shifts == 4
    assert stats.total_hours == pytest.approx(30.0)
    assert stats.shift_distribution == {"morning": 2, "night": 2}
    assert stats.as_dict()["average_shifts_per_day"] == pytest.approx(4.0)


def test_empty_window_is_all_zero():
    stats = schedule_stats([])
    assert stats.start_date is None
    assert stats.total_days == 0
    assert stats.average_hours_per_day == 0.0
    assert stats.working_day_percentage == 0.0


def test_entry_hours_wraps_midnight():
    timeline = default_timeline()
    night = ShiftEntry(shift_id="night", start_time=time(21, 0), end_time=time(5, 0))
    assert entry_hours(night, timeline) == pytest.approx(8.0)
    late = ShiftEntry(
        shift_id="night", start_time=time(23, 0), end_time=time(3, 30), reduced=True
    )
    assert entry_hours(late, timeline) == pytest.approx(4.5)
    overtime = ShiftEntry(shift_id="overtime", start_time=time(8, 0), end_time=time(10, 0))
    assert entry_hours(overtime, timeline) == pytest.approx(2.0)


def test_user_summary_groups_per_user(composer, snapshot):
    result = composer.compose_users(["dave", "erin"], date(2024, 1, 1), date(2024, 1, 3))
    summary = user_summary(user_day_dataframe(result, snapshot.timeline_or_default()))
    assert list(summary.columns) == USER_SUMMARY_COLUMNS
    rows = summary.set_index("user_id")
    assert rows.loc["dave", "working_days"] == 3
    assert rows.loc["dave", "total_hours"] == pytest.approx(24.0)
    assert rows.loc["erin", "working_days"] == 2
    assert rows.loc["erin", "total_hours"] == pytest.approx(14.0)
    assert rows.loc["erin", "max_daily_hours"] == pytest.approx(8.0)


def test_user_summary_of_nothing_keeps_columns():
    assert list(user_summary(user_day_dataframe([])).columns) == USER_SUMMARY_COLUMNS
