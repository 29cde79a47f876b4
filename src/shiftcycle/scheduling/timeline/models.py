"""Shift definitions and planned plant-stop windows."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable


@dataclass(slots=True)
class ShiftDefinition:
    """Defines a named shift and its time-of-day window.

    ``end`` earlier than (or equal to) ``start`` means the shift crosses midnight.
    """

    id: str
    name: str
    start: time
    end: time

    def __post_init__(self) -> None:
        if not self.id or not self.id.strip():
            raise ValueError("ShiftDefinition.id must be non-empty")

    @property
    def crosses_midnight(self) -> bool:
        return self.end <= self.start

    def duration_minutes(self) -> int:
        start = datetime.combine(date.min, self.start)
        end = datetime.combine(date.min, self.end)
        if self.crosses_midnight:
            end += timedelta(days=1)
        return int((end - start).total_seconds() // 60)


@dataclass(slots=True)
class PlantStop:
    """Planned downtime spanning shift slots across any number of dates.

    The stop begins with shift ``start_shift`` (1-based) on ``start_date`` and runs up to, but not
    including, shift ``end_shift`` on ``end_date``.
    """

    start_date: date
    end_date: date
    start_shift: int = 1
    end_shift: int = 1
    reason: str | None = None

    def __post_init__(self) -> None:
        if self.start_shift < 1 or self.end_shift < 1:
            raise ValueError("PlantStop shift numbers must be >= 1")
        if (self.end_date, self.end_shift) <= (self.start_date, self.start_shift):
            raise ValueError("PlantStop must end after it starts")

    def covers(self, day: date, shift_number: int, shifts_per_day: int = 3) -> bool:
        slot = _slot(day, shift_number, shifts_per_day)
        first = _slot(self.start_date, self.start_shift, shifts_per_day)
        last = _slot(self.end_date, self.end_shift, shifts_per_day)
        return first <= slot < last

    def touches(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


def _slot(day: date, shift_number: int, shifts_per_day: int) -> int:
    return day.toordinal() * shifts_per_day + (shift_number - 1)


@dataclass(slots=True)
class TimelineConfig:
    """Versioned reference data: shift definitions in daily order plus plant stops."""

    shifts: tuple[ShiftDefinition, ...]
    stops: tuple[PlantStop, ...] = ()
    version: str = "1"

    def __post_init__(self) -> None:
        ids = [shift.id for shift in self.shifts]
        if len(ids) != len(set(ids)):
            raise ValueError("TimelineConfig shift ids must be unique")

    @property
    def shifts_per_day(self) -> int:
        return len(self.shifts)

    def shift(self, shift_id: str) -> ShiftDefinition | None:
        for shift in self.shifts:
            if shift.id == shift_id:
                return shift
        return None

    def shift_number(self, shift_id: str) -> int | None:
        """Return the 1-based position of ``shift_id`` within the day, if known."""
        for index, shift in enumerate(self.shifts, start=1):
            if shift.id == shift_id:
                return index
        return None

    def iter_stops(self) -> Iterable[PlantStop]:
        return iter(self.stops)

    def stop_for(self, day: date, shift_id: str) -> PlantStop | None:
        number = self.shift_number(shift_id)
        if number is None:
            return None
        for stop in self.stops:
            if stop.covers(day, number, self.shifts_per_day):
                return stop
        return None


def default_shifts() -> tuple[ShiftDefinition, ...]:
    """Return the three eight-hour shifts of the continuous rotation."""

    return (
        ShiftDefinition("morning", "Morning", time(5, 0), time(13, 0)),
        ShiftDefinition("afternoon", "Afternoon", time(13, 0), time(21, 0)),
        ShiftDefinition("night", "Night", time(21, 0), time(5, 0)),
    )


def default_timeline(stops: Iterable[PlantStop] = ()) -> TimelineConfig:
    return TimelineConfig(shifts=default_shifts(), stops=tuple(stops))


__all__ = [
    "ShiftDefinition",
    "PlantStop",
    "TimelineConfig",
    "default_shifts",
    "default_timeline",
]
