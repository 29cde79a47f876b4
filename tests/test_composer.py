from __future__ import annotations

import threading
from datetime import date, time, timedelta

import pytest

from shiftcycle.engine import composer as composer_module
from shiftcycle.engine.composer import (
    ComposeConfig,
    ScheduleComposer,
    compose_range,
    compose_rotation_day,
    compose_team_roster,
)
from shiftcycle.engine.overlay import (
    create_shift_change,
    create_shift_swap,
    create_time_reduction,
    create_vacation,
)
from shiftcycle.scheduling.rotation import (
    REFERENCE_START_DATE,
    bootstrap_rotation_patterns,
)
from shiftcycle.snapshot.contract import ApprovalStatus, Frequency, RecurrencePattern
from tests.factories import make_assignment

TUESDAY = date(2024, 1, 2)


def _approved(exception):
    return exception.model_copy(update={"status": ApprovalStatus.APPROVED})


@pytest.fixture
def patterns(mnr_pattern, weekday_pattern, saturday_pattern):
    return [mnr_pattern, weekday_pattern, saturday_pattern]


def test_range_has_one_entry_per_date(mnr_pattern):
    result = compose_range(
        "u1",
        date(2024, 1, 1),
        date(2024, 1, 31),
        [make_assignment("a1", "u1", "mnr")],
        [],
        [mnr_pattern],
    )
    assert len(result.days) == 31
    assert [day.date for day in result.days] == [
        date(2024, 1, 1) + timedelta(days=n) for n in range(31)
    ]
    assert not result.cancelled
    assert result.errors == []


def test_composed_entries_follow_pattern_and_shift_times(mnr_pattern):
    assignments = [make_assignment("a1", "u1", "mnr")]
    result = compose_range(
        "u1", date(2024, 1, 1), date(2024, 1, 3), assignments, [], [mnr_pattern]
    )
    first, second, third = result.days
    assert first.shift_ids() == ["morning"]
    assert (first.entries[0].start_time, first.entries[0].end_time) == (time(5, 0), time(13, 0))
    assert first.entries[0].user_ids == ["u1"]
    assert first.entries[0].team_ids == ["T"]
    assert second.shift_ids() == ["night"]
    assert third.is_rest_day


def test_approved_absence_forces_rest_day(mnr_pattern):
    vacation = _approved(create_vacation("v1", "u1", date(2024, 1, 1)))
    result = compose_range(
        "u1",
        date(2024, 1, 1),
        date(2024, 1, 2),
        [make_assignment("a1", "u1", "mnr")],
        [vacation],
        [mnr_pattern],
    )
    assert result.days[0].is_rest_day
    assert result.days[1].shift_ids() == ["night"]


def test_missing_pattern_recorded_and_batch_continues(mnr_pattern):
    composer = ScheduleComposer(
        [make_assignment("a1", "u1", "ghost"), make_assignment("a2", "u2", "mnr")],
        [],
        [mnr_pattern],
    )
    result = composer.compose_users(["u1", "u2"], date(2024, 1, 1), date(2024, 1, 3))
    assert len(result.days) == 3
    assert {error.code for error in result.errors} == {"missing_pattern"}
    assert all(error.user_id == "u1" for error in result.errors)
    assert result.days[0].entry_for("u2").shift_id == "morning"
    assert result.days[0].entry_for("u1") is None


def test_reduction_splits_entry(mnr_pattern):
    reduction = _approved(
        create_time_reduction("r1", "u1", date(2024, 1, 1), time(6, 0), time(12, 0))
    )
    composer = ScheduleComposer(
        [make_assignment("a1", "u1", "mnr"), make_assignment("a2", "u2", "mnr")],
        [reduction],
        [mnr_pattern],
    )
    day = composer.compose_day(["u1", "u2"], date(2024, 1, 1))
    assert len(day.entries) == 2
    reduced = day.entry_for("u1")
    assert reduced.reduced
    assert (reduced.start_time, reduced.end_time) == (time(6, 0), time(12, 0))
    assert reduced.exception_ids == ["r1"]
    assert not day.entry_for("u2").reduced


def test_swap_exchanges_shifts_for_both_users(patterns):
    swap = _approved(create_shift_swap("w1", "u1", TUESDAY, "u2"))
    composer = ScheduleComposer(
        [make_assignment("a1", "u1", "mnr"), make_assignment("a2", "u2", "weekday")],
        [swap],
        patterns,
    )
    day = composer.compose_day(["u1", "u2"], TUESDAY)
    assert day.entry_for("u1").shift_id == "morning"
    assert day.entry_for("u2").shift_id == "night"


def test_missing_swap_partner_is_an_error(mnr_pattern):
    swap = _approved(create_shift_swap("w1", "u1", TUESDAY, "nobody"))
    result = compose_range(
        "u1", TUESDAY, TUESDAY, [make_assignment("a1", "u1", "mnr")], [swap], [mnr_pattern]
    )
    day = result.days[0]
    assert [error.code for error in day.errors] == ["missing_swap_partner"]
    assert day.shift_ids() == ["night"]


def test_conflicts_reported_on_day(mnr_pattern):
    vacation = _approved(create_vacation("v1", "u1", TUESDAY))
    swap = _approved(create_shift_swap("w1", "u1", TUESDAY, "u2", new_shift_id="afternoon"))
    assignments = [make_assignment("a1", "u1", "mnr")]
    result = compose_range(
        "u1", TUESDAY, TUESDAY, assignments, [vacation, swap], [mnr_pattern]
    )
    day = result.days[0]
    assert len(day.conflicts) == 1
    assert day.shift_ids() == ["night"]
    assert result.conflicts() == day.conflicts


def test_replacement_covers_absent_users_shift(patterns):
    vacation = _approved(create_vacation("v1", "u1", TUESDAY, replacement_user_id="u3"))
    assignments = [
        make_assignment("a1", "u1", "mnr"),
        make_assignment("a2", "u2", "weekday"),
        make_assignment("a3", "u3", "saturday", team_id="R"),
    ]
    roster = compose_team_roster("T", TUESDAY, assignments, [vacation], patterns)
    assert roster.entry_for("u1") is None
    night = roster.entry_for("u3")
    assert night.shift_id == "night"
    assert night.team_ids == ["T"]
    assert roster.entry_for("u2").shift_id == "morning"

    covering = compose_range("u3", TUESDAY, TUESDAY, assignments, [vacation], patterns)
    assert covering.days[0].shift_ids() == ["night"]


def test_busy_replacement_reported(patterns):
    vacation = _approved(create_vacation("v1", "u1", TUESDAY, replacement_user_id="u2"))
    assignments = [make_assignment("a1", "u1", "mnr"), make_assignment("a2", "u2", "weekday")]
    result = compose_range("u2", TUESDAY, TUESDAY, assignments, [vacation], patterns)
    assert result.days[0].shift_ids() == ["morning"]
    assert [error.code for error in result.errors] == ["replacement_busy"]


def test_parallel_batches_preserve_order(patterns):
    assignments = [
        make_assignment("a1", "u1", "mnr"),
        make_assignment("a2", "u2", "weekday"),
        make_assignment("a3", "u3", "saturday"),
    ]
    sequential = ScheduleComposer(assignments, [], patterns, config=ComposeConfig(batch_days=3))
    parallel = ScheduleComposer(
        assignments, [], patterns, config=ComposeConfig(batch_days=3, max_workers=4)
    )
    start, end = date(2024, 1, 1), date(2024, 2, 29)
    expected = sequential.compose_users(["u1", "u2", "u3"], start, end)
    actual = parallel.compose_users(["u3", "u2", "u1"], start, end)
    assert [day.date for day in actual.days] == [day.date for day in expected.days]
    assert actual.days == expected.days


def test_cancellation_returns_completed_prefix(mnr_pattern):
    cancel = threading.Event()
    seen: list[int] = []

    def _on_batch(index, days):
        seen.append(index)
        cancel.set()

    composer = ScheduleComposer(
        [make_assignment("a1", "u1", "mnr")],
        [],
        [mnr_pattern],
        config=ComposeConfig(batch_days=5),
    )
    result = composer.compose_range(
        "u1", date(2024, 1, 1), date(2024, 1, 20), cancel=cancel, on_batch=_on_batch
    )
    assert result.cancelled
    assert seen == [0]
    assert [day.date for day in result.days] == [date(2024, 1, n) for n in range(1, 6)]


def test_compose_config_validation():
    with pytest.raises(ValueError):
        ComposeConfig(batch_days=0)
    with pytest.raises(ValueError):
        ComposeConfig(max_workers=0)


def test_rotation_day_without_members():
    day = compose_rotation_day(REFERENCE_START_DATE)
    assert [(entry.shift_id, entry.team_ids) for entry in day.entries] == [
        ("morning", ["A", "B"]),
        ("afternoon", ["C", "D"]),
        ("night", ["E", "F"]),
    ]
    assert all(entry.user_ids == [] for entry in day.entries)


def test_rotation_day_lists_members_and_absences():
    assignments = [
        make_assignment("a1", "u1", "rotation-A", team_id="A", start_date=REFERENCE_START_DATE),
        make_assignment("a2", "u2", "rotation-A", team_id="A", start_date=REFERENCE_START_DATE),
        make_assignment("a3", "u3", "rotation-E", team_id="E", start_date=REFERENCE_START_DATE),
    ]
    vacation = _approved(create_vacation("v1", "u2", REFERENCE_START_DATE))
    day = compose_rotation_day(
        REFERENCE_START_DATE,
        assignments=assignments,
        exceptions=[vacation],
        patterns=bootstrap_rotation_patterns(),
    )
    morning, afternoon, night = day.entries
    assert morning.user_ids == ["u1"]
    assert afternoon.user_ids == []
    assert night.user_ids == ["u3"]


def test_unassigned_user_with_change_stays_at_rest(mnr_pattern):
    change = _approved(create_shift_change("c1", "u9", TUESDAY, "morning"))
    composer = ScheduleComposer([make_assignment("a1", "u1", "mnr")], [change], [mnr_pattern])
    day = composer.compose_day(["u9"], TUESDAY)
    assert day.is_rest_day
    assert day.entry_for("u9") is None
    assert day.errors == []


def test_unassigned_user_still_covers_absence(patterns):
    vacation = _approved(create_vacation("v1", "u1", TUESDAY, replacement_user_id="u9"))
    composer = ScheduleComposer([make_assignment("a1", "u1", "mnr")], [vacation], patterns)
    day = composer.compose_day(["u9"], TUESDAY)
    assert day.entry_for("u9").shift_id == "night"


def test_roster_does_not_double_place_working_replacement(patterns):
    vacation = _approved(create_vacation("v1", "u1", TUESDAY, replacement_user_id="u2"))
    assignments = [
        make_assignment("a1", "u1", "mnr"),
        make_assignment("a2", "u2", "weekday", team_id="R"),
    ]
    roster = compose_team_roster("T", TUESDAY, assignments, [vacation], patterns)
    assert roster.entry_for("u1") is None
    assert roster.entry_for("u2") is None
    assert roster.is_rest_day
    assert [error.code for error in roster.errors] == ["replacement_busy"]
    assert roster.errors[0].user_id == "u2"


def test_one_users_evaluation_failure_does_not_abort_batch(weekday_pattern):
    broken = RecurrencePattern.model_construct(
        id="broken",
        frequency=Frequency.CUSTOM,
        start_date=date(2024, 1, 1),
        cycle_length=4,
        days=[],
    )
    composer = ScheduleComposer(
        [make_assignment("a1", "u1", "broken"), make_assignment("a2", "u2", "weekday")],
        [],
        [broken, weekday_pattern],
    )
    result = composer.compose_users(["u1", "u2"], date(2024, 1, 1), date(2024, 1, 5))
    assert len(result.days) == 5
    assert all(day.entry_for("u2").shift_id == "morning" for day in result.days)
    assert all(day.entry_for("u1") is None for day in result.days)
    assert len(result.errors) == 5
    assert {error.code for error in result.errors} == {"evaluation_failed"}
    assert {error.user_id for error in result.errors} == {"u1"}


def test_conflicts_on_matches_composition(patterns):
    swap = _approved(create_shift_swap("w1", "u1", TUESDAY, "u2"))
    change = _approved(create_shift_change("c1", "u1", TUESDAY, "morning"))
    vacation = _approved(create_vacation("v1", "u3", TUESDAY))
    moved = _approved(create_shift_change("c2", "u3", TUESDAY, "afternoon"))
    assignments = [
        make_assignment("a1", "u1", "mnr"),
        make_assignment("a2", "u2", "weekday"),
        make_assignment("a3", "u3", "mnr"),
    ]
    composer = ScheduleComposer(assignments, [swap, change, vacation, moved], patterns)
    composed = composer.compose_day(["u1", "u2", "u3"], TUESDAY)
    found = composer.conflicts_on(TUESDAY)
    assert found == composed.conflicts
    assert [conflict.user_id for conflict in found] == ["u3"]


def test_governing_assignment_resolved_once_per_user_day(monkeypatch, mnr_pattern):
    calls: list[tuple[str, date]] = []
    original = composer_module.resolve

    def _counting(user_id, day, *args, **kwargs):
        calls.append((user_id, day))
        return original(user_id, day, *args, **kwargs)

    monkeypatch.setattr(composer_module, "resolve", _counting)
    composer = ScheduleComposer([make_assignment("a1", "u1", "mnr")], [], [mnr_pattern])
    day = composer.compose_day(["u1"], TUESDAY)
    assert day.shift_ids() == ["night"]
    assert calls == [("u1", TUESDAY)]
