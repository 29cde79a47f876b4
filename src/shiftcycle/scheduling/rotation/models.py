"""Fixed 9-team continuous rotation (four days on, two days off)."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date

from shiftcycle.snapshot.contract.models import (
    Frequency,
    PatternDay,
    RecurrencePattern,
    Team,
)

HALF_TEAMS: tuple[str, ...] = tuple("ABCDEFGHI")
REFERENCE_START_DATE = date(2018, 11, 7)
ROTATION_SHIFT_IDS: tuple[str, ...] = ("morning", "afternoon", "night")

# One row per cycle day, one cell per shift (morning, afternoon, night).
ROTATION_SCHEME: tuple[tuple[str, str, str], ...] = (
    ("AB", "CD", "EF"),
    ("AB", "CD", "EF"),
    ("AH", "DI", "GF"),
    ("AH", "DI", "GF"),
    ("CH", "EI", "GB"),
    ("CH", "EI", "GB"),
    ("CD", "EF", "AB"),
    ("CD", "EF", "AB"),
    ("DI", "GF", "AH"),
    ("DI", "GF", "AH"),
    ("EI", "GB", "CH"),
    ("EI", "GB", "CH"),
    ("EF", "AB", "CD"),
    ("EF", "AB", "CD"),
    ("GF", "AH", "DI"),
    ("GF", "AH", "DI"),
    ("GB", "CH", "EI"),
    ("GB", "CH", "EI"),
)


@dataclass(frozen=True)
class RotationScheme:
    """Cycle table mapping each cycle day and shift slot to the half-teams on duty.

    Attributes
    ----------
    days:
        One tuple per cycle day; each cell lists the half-team letters working that shift.
    start_date:
        Date on which cycle day 1 falls. Earlier dates wrap backwards (floor modulo).
    shift_ids:
        Shift identifiers matching the cell order of each row.
    """

    days: Sequence[Sequence[str]]
    start_date: date = REFERENCE_START_DATE
    shift_ids: Sequence[str] = ROTATION_SHIFT_IDS

    def __post_init__(self) -> None:
        if not self.days:
            raise ValueError("RotationScheme requires at least one cycle day")
        for index, row in enumerate(self.days):
            if len(row) != len(self.shift_ids):
                raise ValueError(
                    f"Rotation day {index + 1} has {len(row)} cells, expected {len(self.shift_ids)}"
                )
            letters = "".join(row)
            if len(set(letters)) != len(letters):
                raise ValueError(f"Rotation day {index + 1} assigns a team to two shifts")

    @property
    def cycle_length(self) -> int:
        return len(self.days)

    @property
    def teams(self) -> tuple[str, ...]:
        return tuple(sorted({letter for row in self.days for cell in row for letter in cell}))

    def cycle_index(self, day: date) -> int:
        """Return the 0-based cycle day for ``day``."""
        return (day - self.start_date).days % self.cycle_length

    def working_on(self, day: date) -> dict[str, tuple[str, ...]]:
        """Return ``{shift_id: half_teams}`` for the given date, in shift order."""
        row = self.days[self.cycle_index(day)]
        return {shift_id: tuple(cell) for shift_id, cell in zip(self.shift_ids, row)}

    def off_on(self, day: date) -> tuple[str, ...]:
        on_duty = {team for cell in self.working_on(day).values() for team in cell}
        return tuple(team for team in self.teams if team not in on_duty)

    def shift_for(self, team: str, day: date) -> str | None:
        for shift_id, cell in self.working_on(day).items():
            if team in cell:
                return shift_id
        return None

    def pattern_for(self, team: str) -> RecurrencePattern:
        """Build the ``ROTATION_CYCLE`` pattern followed by one half-team."""

        days: list[PatternDay] = []
        for number, row in enumerate(self.days, start=1):
            shift_id = None
            for candidate, cell in zip(self.shift_ids, row):
                if team in cell:
                    shift_id = candidate
                    break
            days.append(PatternDay(day_number=number, shift_id=shift_id))
        return RecurrencePattern(
            id=rotation_pattern_id(team),
            name=f"Rotation team {team}",
            frequency=Frequency.ROTATION_CYCLE,
            start_date=self.start_date,
            cycle_length=self.cycle_length,
            days=days,
        )


def rotation_pattern_id(team: str) -> str:
    return f"rotation-{team}"


def default_rotation_scheme(start_date: date | None = None) -> RotationScheme:
    """Return the 18-day, 9-team scheme anchored on :data:`REFERENCE_START_DATE`."""

    return RotationScheme(days=ROTATION_SCHEME, start_date=start_date or REFERENCE_START_DATE)


def bootstrap_rotation_patterns(start_date: date | None = None) -> list[RecurrencePattern]:
    scheme = default_rotation_scheme(start_date)
    return [scheme.pattern_for(team) for team in scheme.teams]


def rotation_teams() -> list[Team]:
    return [Team(id=team, name=f"Team {team}") for team in HALF_TEAMS]


def teams_working_on(day: date, start_date: date | None = None) -> Mapping[str, tuple[str, ...]]:
    return default_rotation_scheme(start_date).working_on(day)


def teams_off_on(day: date, start_date: date | None = None) -> tuple[str, ...]:
    return default_rotation_scheme(start_date).off_on(day)


__all__ = [
    "HALF_TEAMS",
    "REFERENCE_START_DATE",
    "ROTATION_SCHEME",
    "ROTATION_SHIFT_IDS",
    "RotationScheme",
    "bootstrap_rotation_patterns",
    "default_rotation_scheme",
    "rotation_pattern_id",
    "rotation_teams",
    "teams_off_on",
    "teams_working_on",
]
