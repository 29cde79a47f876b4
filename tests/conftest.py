from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from shiftcycle.engine.recurrence import pattern_from_sequence
from shiftcycle.snapshot.contract import (
    Frequency,
    RecurrencePattern,
    Weekday,
)

DEMO_SNAPSHOT = Path(__file__).resolve().parents[1] / "examples" / "demo" / "snapshot.yaml"


@pytest.fixture
def demo_snapshot_path() -> Path:
    return DEMO_SNAPSHOT


@pytest.fixture
def mnr_pattern() -> RecurrencePattern:
    """Morning, night, rest from 2024-01-01."""
    return pattern_from_sequence("mnr", date(2024, 1, 1), ["morning", "night", None])


@pytest.fixture
def weekday_pattern() -> RecurrencePattern:
    return RecurrencePattern(
        id="weekday",
        frequency=Frequency.WEEKLY,
        start_date=date(2024, 1, 1),
        shift_id="morning",
        days_of_week=[
            Weekday.MONDAY,
            Weekday.TUESDAY,
            Weekday.WEDNESDAY,
            Weekday.THURSDAY,
            Weekday.FRIDAY,
        ],
    )


@pytest.fixture
def saturday_pattern() -> RecurrencePattern:
    return RecurrencePattern(
        id="saturday",
        frequency=Frequency.WEEKLY,
        start_date=date(2024, 1, 1),
        shift_id="afternoon",
        days_of_week=[Weekday.SATURDAY],
    )

