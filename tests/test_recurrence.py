from __future__ import annotations

from datetime import date, timedelta

import pytest
from pydantic import ValidationError

from shiftcycle.core.errors import PatternValidationError
from shiftcycle.engine.recurrence import (
    Outcome,
    cycle_position,
    evaluate,
    evaluate_range,
    next_work_date,
    pattern_from_sequence,
    pattern_sequence,
    retire_pattern,
    validate_pattern,
    validate_pattern_days,
)
from shiftcycle.snapshot.contract import (
    EndCondition,
    Frequency,
    PatternDay,
    RecurrencePattern,
    Weekday,
)


def test_morning_night_rest_cycle(mnr_pattern):
    assert evaluate(mnr_pattern, date(2024, 1, 1)) == Outcome.work("morning")
    assert evaluate(mnr_pattern, date(2024, 1, 2)) == Outcome.work("night")
    assert evaluate(mnr_pattern, date(2024, 1, 3)).is_rest
    assert evaluate(mnr_pattern, date(2024, 1, 4)) == Outcome.work("morning")

    before = evaluate(mnr_pattern, date(2023, 12, 31))
    assert before.is_rest
    assert before.out_of_range


def test_evaluation_is_deterministic(mnr_pattern):
    first = evaluate_range(mnr_pattern, date(2024, 1, 1), date(2024, 3, 31))
    second = evaluate_range(mnr_pattern, date(2024, 1, 1), date(2024, 3, 31))
    assert first == second
    assert len(first) == 91


def test_cycle_repeats_every_cycle_length():
    pattern = pattern_from_sequence(
        "four-two",
        date(2024, 1, 1),
        ["morning", "morning", "night", "night", None, None],
    )
    start = date(2024, 1, 1)
    for offset in range(0, 60, 7):
        day = start + timedelta(days=offset)
        assert evaluate(pattern, day) == evaluate(pattern, day + timedelta(days=6))
        assert cycle_position(pattern, day) == offset % 6


def test_sequence_round_trip():
    sequence = ["morning", None, "afternoon", "afternoon", None]
    pattern = pattern_from_sequence("custom", date(2024, 5, 1), sequence)
    assert pattern.cycle_length == 5
    assert pattern_sequence(pattern) == sequence
    rebuilt = pattern_from_sequence("again", date(2024, 5, 1), pattern_sequence(pattern))
    assert pattern_sequence(rebuilt) == sequence


def test_non_sequential_days_rejected():
    days = [PatternDay(day_number=n, shift_id="morning") for n in (1, 3, 4)]
    with pytest.raises(PatternValidationError) as excinfo:
        validate_pattern_days(days, 3)
    assert "non-sequential" in str(excinfo.value)
    assert excinfo.value.issues

    with pytest.raises(ValidationError, match="non-sequential"):
        RecurrencePattern(
            id="broken",
            frequency=Frequency.CUSTOM,
            start_date=date(2024, 1, 1),
            cycle_length=3,
            days=days,
        )


def test_empty_pattern_rejected():
    with pytest.raises(PatternValidationError, match="empty"):
        validate_pattern_days([], 0)
    with pytest.raises(PatternValidationError, match="empty"):
        pattern_from_sequence("nothing", date(2024, 1, 1), [])


def test_cycle_length_mismatch_rejected():
    days = [PatternDay(day_number=n) for n in (1, 2, 3)]
    with pytest.raises(ValidationError, match="mismatch"):
        RecurrencePattern(
            id="short",
            frequency=Frequency.ROTATION_CYCLE,
            start_date=date(2024, 1, 1),
            cycle_length=5,
            days=days,
        )


def test_validate_pattern_catches_unvalidated_construction():
    pattern = RecurrencePattern.model_construct(
        id="raw",
        frequency=Frequency.CUSTOM,
        interval=1,
        start_date=date(2024, 1, 1),
        end_condition=EndCondition(),
        cycle_length=2,
        days=[PatternDay(day_number=2)],
    )
    with pytest.raises(PatternValidationError):
        validate_pattern(pattern)


def test_daily_interval():
    pattern = RecurrencePattern(
        id="every-other",
        frequency=Frequency.DAILY,
        interval=2,
        start_date=date(2024, 1, 1),
        shift_id="afternoon",
    )
    assert evaluate(pattern, date(2024, 1, 3)) == Outcome.work("afternoon")
    assert evaluate(pattern, date(2024, 1, 2)).is_rest
    assert not evaluate(pattern, date(2024, 1, 2)).out_of_range


def test_weekly_interval_aligned_on_week_start():
    pattern = RecurrencePattern(
        id="fortnight",
        frequency=Frequency.WEEKLY,
        interval=2,
        start_date=date(2024, 1, 1),
        shift_id="morning",
        days_of_week=[Weekday.MONDAY, Weekday.WEDNESDAY],
    )
    assert evaluate(pattern, date(2024, 1, 3)).is_work
    assert evaluate(pattern, date(2024, 1, 8)).is_rest
    assert evaluate(pattern, date(2024, 1, 15)).is_work
    assert evaluate(pattern, date(2024, 1, 16)).is_rest


def test_weekly_requires_days_of_week():
    with pytest.raises(ValidationError, match="days_of_week"):
        RecurrencePattern(
            id="weekly",
            frequency=Frequency.WEEKLY,
            start_date=date(2024, 1, 1),
            shift_id="morning",
        )


def test_monthly_by_month_day_and_default_day():
    pattern = RecurrencePattern(
        id="paydays",
        frequency=Frequency.MONTHLY,
        start_date=date(2024, 1, 1),
        shift_id="morning",
        by_month_day=[1, 15],
    )
    assert evaluate(pattern, date(2024, 3, 15)).is_work
    assert evaluate(pattern, date(2024, 3, 16)).is_rest

    month_end = RecurrencePattern(
        id="month-end",
        frequency=Frequency.MONTHLY,
        start_date=date(2024, 1, 31),
        shift_id="night",
    )
    assert evaluate(month_end, date(2024, 2, 29)).is_rest
    assert evaluate(month_end, date(2024, 3, 31)).is_work


def test_yearly_leap_day():
    pattern = RecurrencePattern(
        id="leap",
        frequency=Frequency.YEARLY,
        start_date=date(2024, 2, 29),
        shift_id="night",
    )
    assert evaluate(pattern, date(2025, 2, 28)).is_rest
    assert evaluate(pattern, date(2028, 2, 29)).is_work


def test_count_end_condition_counts_occurrences_for_calendar_patterns():
    pattern = RecurrencePattern(
        id="three-days",
        frequency=Frequency.DAILY,
        start_date=date(2024, 1, 1),
        shift_id="morning",
        end_condition=EndCondition.after(3),
    )
    assert evaluate(pattern, date(2024, 1, 3)).is_work
    after = evaluate(pattern, date(2024, 1, 4))
    assert after.is_rest and after.out_of_range


def test_count_end_condition_counts_cycles_for_cycle_patterns():
    pattern = pattern_from_sequence(
        "two-cycles",
        date(2024, 1, 1),
        ["morning", None],
        end_condition=EndCondition.after(2),
    )
    assert evaluate(pattern, date(2024, 1, 3)).is_work
    assert not evaluate(pattern, date(2024, 1, 4)).out_of_range
    assert evaluate(pattern, date(2024, 1, 5)).out_of_range


def test_count_end_condition_for_fortnightly_weekdays():
    pattern = RecurrencePattern(
        id="fortnightly",
        frequency=Frequency.WEEKLY,
        interval=2,
        start_date=date(2024, 1, 3),
        shift_id="morning",
        days_of_week=[Weekday.MONDAY, Weekday.WEDNESDAY, Weekday.FRIDAY],
        end_condition=EndCondition.after(4),
    )
    outcomes = evaluate_range(pattern, date(2024, 1, 1), date(2024, 2, 29))
    worked = [day for day, outcome in outcomes.items() if outcome.is_work]
    assert worked == [date(2024, 1, 3), date(2024, 1, 5), date(2024, 1, 15), date(2024, 1, 17)]
    assert not evaluate(pattern, date(2024, 1, 16)).out_of_range
    assert evaluate(pattern, date(2024, 1, 18)).out_of_range
    assert evaluate(pattern, date(2024, 1, 29)).out_of_range


def test_count_end_condition_skips_short_months():
    pattern = RecurrencePattern(
        id="month-end",
        frequency=Frequency.MONTHLY,
        start_date=date(2024, 1, 31),
        shift_id="night",
        by_month_day=[31],
        end_condition=EndCondition.after(3),
    )
    assert evaluate(pattern, date(2024, 3, 31)).is_work
    assert not evaluate(pattern, date(2024, 4, 30)).out_of_range
    assert evaluate(pattern, date(2024, 5, 31)).is_work
    assert evaluate(pattern, date(2024, 6, 1)).out_of_range
    assert evaluate(pattern, date(2024, 7, 31)).out_of_range


def test_count_end_condition_matches_uncapped_occurrences():
    rule = {
        "id": "every-third-week",
        "frequency": Frequency.WEEKLY,
        "interval": 3,
        "start_date": date(2024, 2, 8),
        "shift_id": "afternoon",
        "days_of_week": [Weekday.TUESDAY, Weekday.SATURDAY],
        "week_start": Weekday.SUNDAY,
    }
    uncapped = RecurrencePattern(**rule)
    capped = RecurrencePattern(**rule, end_condition=EndCondition.after(7))
    window = (date(2024, 1, 1), date(2025, 1, 1))
    expected = [day for day, out in evaluate_range(uncapped, *window).items() if out.is_work]
    actual = [day for day, out in evaluate_range(capped, *window).items() if out.is_work]
    assert actual == expected[:7]
    assert evaluate(capped, expected[7]).out_of_range


def test_until_end_condition(mnr_pattern):
    until = EndCondition.until_date(date(2024, 1, 10))
    bounded = mnr_pattern.model_copy(update={"end_condition": until})
    assert evaluate(bounded, date(2024, 1, 10)).is_work
    assert evaluate(bounded, date(2024, 1, 11)).out_of_range


def test_next_work_date(mnr_pattern):
    assert next_work_date(mnr_pattern, date(2024, 1, 2)) == date(2024, 1, 4)
    assert next_work_date(mnr_pattern, date(2024, 1, 1), inclusive=True) == date(2024, 1, 1)
    assert next_work_date(mnr_pattern, date(2023, 12, 1)) == date(2024, 1, 1)

    finished = mnr_pattern.model_copy(update={"end_condition": EndCondition.after(1)})
    assert next_work_date(finished, date(2024, 1, 3)) is None


def test_cycle_position_before_start_wraps(mnr_pattern):
    assert cycle_position(mnr_pattern, date(2023, 12, 31)) == 2


def test_retire_pattern_keeps_evaluation(mnr_pattern):
    retired = retire_pattern(mnr_pattern)
    assert not retired.active
    assert mnr_pattern.active
    assert evaluate(retired, date(2024, 1, 2)) == evaluate(mnr_pattern, date(2024, 1, 2))
