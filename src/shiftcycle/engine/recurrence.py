"""Recurrence evaluation: map a pattern and a date to work or rest."""

from __future__ import annotations

import calendar
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import date, timedelta

from shiftcycle.core.errors import PatternValidationError
from shiftcycle.snapshot.contract.models import (
    EndCondition,
    EndType,
    Frequency,
    PatternDay,
    RecurrencePattern,
    Weekday,
    pattern_day_issues,
)

__all__ = [
    "Outcome",
    "cycle_position",
    "evaluate",
    "evaluate_range",
    "iter_dates",
    "next_work_date",
    "pattern_from_sequence",
    "pattern_sequence",
    "retire_pattern",
    "validate_pattern",
    "validate_pattern_days",
]


@dataclass(frozen=True, slots=True)
class Outcome:
    """Result of evaluating a pattern on one date.

    ``shift_id`` is ``None`` for rest. ``out_of_range`` marks dates before the pattern start or
    past its end condition; those are rest as well.
    """

    shift_id: str | None = None
    out_of_range: bool = False

    @property
    def is_work(self) -> bool:
        return self.shift_id is not None

    @property
    def is_rest(self) -> bool:
        return self.shift_id is None

    @classmethod
    def rest(cls, *, out_of_range: bool = False) -> Outcome:
        return cls(shift_id=None, out_of_range=out_of_range)

    @classmethod
    def work(cls, shift_id: str) -> Outcome:
        return cls(shift_id=shift_id)


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Yield every date from ``start`` to ``end`` inclusive."""
    if end < start:
        raise ValueError(f"end date {end} precedes start date {start}")
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def validate_pattern_days(days: Sequence[PatternDay], cycle_length: int | None = None) -> None:
    """Raise :class:`PatternValidationError` when a cycle's day list is malformed."""
    issues = pattern_day_issues(days, cycle_length)
    if issues:
        raise PatternValidationError(issues)


def validate_pattern(pattern: RecurrencePattern) -> RecurrencePattern:
    """Re-check a pattern's structural invariants and return it unchanged.

    Useful for patterns assembled with ``model_construct`` (which skips validation).
    """
    issues: list[str] = []
    if pattern.interval < 1:
        issues.append("interval must be >= 1")
    if pattern.frequency.is_cycle:
        issues.extend(pattern_day_issues(pattern.days, pattern.cycle_length))
    else:
        if not pattern.shift_id:
            issues.append(f"{pattern.frequency.value} patterns require a shift_id")
        if pattern.frequency is Frequency.WEEKLY and not pattern.days_of_week:
            issues.append("WEEKLY patterns require a non-empty days_of_week")
    if issues:
        raise PatternValidationError(issues)
    return pattern


def _week_anchor(day: date, week_start: Weekday) -> date:
    return day - timedelta(days=(day.weekday() - week_start.index) % 7)


def _calendar_match(pattern: RecurrencePattern, day: date) -> bool:
    start = pattern.start_date
    frequency = pattern.frequency
    interval = pattern.interval
    if frequency is Frequency.DAILY:
        return (day - start).days % interval == 0
    if frequency is Frequency.WEEKLY:
        if Weekday.of(day) not in pattern.days_of_week:
            return False
        anchor = _week_anchor(start, pattern.week_start)
        weeks = (_week_anchor(day, pattern.week_start) - anchor).days // 7
        return weeks % interval == 0
    if frequency is Frequency.MONTHLY:
        months = (day.year - start.year) * 12 + (day.month - start.month)
        if months % interval:
            return False
        if pattern.by_month and day.month not in pattern.by_month:
            return False
        return day.day in (pattern.by_month_day or [start.day])
    if frequency is Frequency.YEARLY:
        if (day.year - start.year) % interval:
            return False
        if day.month not in (pattern.by_month or [start.month]):
            return False
        return day.day in (pattern.by_month_day or [start.day])
    raise ValueError(f"{frequency.value} is not a calendar frequency")


def _past_until(end: EndCondition, day: date) -> bool:
    return end.type is EndType.UNTIL and end.until is not None and day > end.until


def _evaluate_cycle(pattern: RecurrencePattern, day: date) -> Outcome:
    length = pattern.cycle_length or len(pattern.days)
    offset = (day - pattern.start_date).days
    end = pattern.end_condition
    if end.type is EndType.COUNT and end.count is not None and offset // length >= end.count:
        return Outcome.rest(out_of_range=True)
    entry = pattern.days[offset % length]
    if entry.shift_id is None:
        return Outcome.rest()
    return Outcome.work(entry.shift_id)


def _month_days(year: int, month: int, days: Sequence[int]) -> Iterator[date]:
    last = calendar.monthrange(year, month)[1]
    for number in sorted(days):
        if number <= last:
            yield date(year, month, number)


def _period_dates(pattern: RecurrencePattern, end: date) -> Iterator[date]:
    """Yield MONTHLY/YEARLY candidate dates period by period up to ``end``'s period."""
    start = pattern.start_date
    days = pattern.by_month_day or [start.day]
    if pattern.frequency is Frequency.MONTHLY:
        months = (end.year - start.year) * 12 + (end.month - start.month)
        for offset in range(0, months + 1, pattern.interval):
            year, month = divmod(start.month - 1 + offset, 12)
            if pattern.by_month and month + 1 not in pattern.by_month:
                continue
            yield from _month_days(start.year + year, month + 1, days)
        return
    for year in range(start.year, end.year + 1, pattern.interval):
        for month in sorted(pattern.by_month or [start.month]):
            yield from _month_days(year, month, days)


def _occurrences_through(pattern: RecurrencePattern, day: date) -> int:
    """Count calendar matches in ``[start_date, day]`` without walking every date."""
    start = pattern.start_date
    if day < start:
        return 0
    if pattern.frequency is Frequency.DAILY:
        return (day - start).days // pattern.interval + 1
    if pattern.frequency is Frequency.WEEKLY:
        week_start = pattern.week_start
        offsets = sorted(
            {(weekday.index - week_start.index) % 7 for weekday in pattern.days_of_week}
        )
        anchor = _week_anchor(start, week_start)
        current = _week_anchor(day, week_start)
        week = (current - anchor).days // 7
        # active weeks before ``current`` contribute every offset
        total = -(-week // pattern.interval) * len(offsets)
        if week % pattern.interval == 0:
            total += sum(1 for offset in offsets if offset <= (day - current).days)
        return total - sum(1 for offset in offsets if offset < (start - anchor).days)
    return sum(1 for candidate in _period_dates(pattern, day) if start <= candidate <= day)


def _evaluate_calendar(pattern: RecurrencePattern, day: date) -> Outcome:
    end = pattern.end_condition
    matches = _calendar_match(pattern, day)
    if end.type is EndType.COUNT and end.count is not None:
        seen = _occurrences_through(pattern, day)
        if seen > end.count or (seen == end.count and not matches):
            return Outcome.rest(out_of_range=True)
    if matches and pattern.shift_id is not None:
        return Outcome.work(pattern.shift_id)
    return Outcome.rest()


def evaluate(pattern: RecurrencePattern, day: date) -> Outcome:
    """Return the pattern's outcome for ``day``.

    The evaluation is pure: the same pattern and date always yield the same outcome.
    Dates before ``start_date`` or beyond the end condition are out-of-range rest days.
    Cycle positions use floor modulo on the day offset from ``start_date``.
    """
    if day < pattern.start_date or _past_until(pattern.end_condition, day):
        return Outcome.rest(out_of_range=True)
    if pattern.frequency.is_cycle:
        return _evaluate_cycle(pattern, day)
    return _evaluate_calendar(pattern, day)


def evaluate_range(pattern: RecurrencePattern, start: date, end: date) -> dict[date, Outcome]:
    return {day: evaluate(pattern, day) for day in iter_dates(start, end)}


def cycle_position(pattern: RecurrencePattern, day: date) -> int | None:
    """Return the 0-based cycle position of ``day`` (``None`` for calendar patterns)."""
    if not pattern.frequency.is_cycle:
        return None
    length = pattern.cycle_length or len(pattern.days)
    return (day - pattern.start_date).days % length


def next_work_date(
    pattern: RecurrencePattern,
    after: date,
    *,
    max_days: int = 366,
    inclusive: bool = False,
) -> date | None:
    """Return the first worked date on or after ``after`` within ``max_days``."""
    current = after if inclusive else after + timedelta(days=1)
    for _ in range(max_days):
        outcome = evaluate(pattern, current)
        if outcome.is_work:
            return current
        if outcome.out_of_range and current > pattern.start_date:
            return None
        current += timedelta(days=1)
    return None


def pattern_from_sequence(
    pattern_id: str,
    start_date: date,
    sequence: Sequence[str | None],
    *,
    name: str | None = None,
    frequency: Frequency = Frequency.CUSTOM,
    end_condition: EndCondition | None = None,
) -> RecurrencePattern:
    """Build a cycle pattern from an ordered list of shift ids (``None`` means rest)."""
    days = [
        PatternDay(day_number=number, shift_id=shift_id)
        for number, shift_id in enumerate(sequence, start=1)
    ]
    validate_pattern_days(days, len(days))
    return RecurrencePattern(
        id=pattern_id,
        name=name,
        frequency=frequency,
        start_date=start_date,
        end_condition=end_condition or EndCondition(),
        cycle_length=len(days),
        days=days,
    )


def pattern_sequence(pattern: RecurrencePattern) -> list[str | None]:
    if not pattern.frequency.is_cycle:
        raise ValueError(f"Pattern {pattern.id} is not a cycle pattern")
    return [entry.shift_id for entry in pattern.days]


def retire_pattern(pattern: RecurrencePattern) -> RecurrencePattern:
    return pattern.model_copy(update={"active": False})
