"""Pydantic models describing shiftcycle snapshot inputs."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, time
from enum import Enum

from pydantic import BaseModel, ValidationInfo, field_validator, model_validator

from shiftcycle.scheduling import TimelineConfig


class Frequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"
    ROTATION_CYCLE = "ROTATION_CYCLE"
    CUSTOM = "CUSTOM"

    @property
    def is_cycle(self) -> bool:
        return self in (Frequency.ROTATION_CYCLE, Frequency.CUSTOM)


class EndType(str, Enum):
    NEVER = "NEVER"
    COUNT = "COUNT"
    UNTIL = "UNTIL"


class Weekday(str, Enum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"

    @property
    def index(self) -> int:
        """Return the ``date.weekday()`` value (Monday is 0)."""
        return list(Weekday).index(self)

    @classmethod
    def of(cls, day: date) -> Weekday:
        return list(cls)[day.weekday()]


class AssignmentPriority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    OVERRIDE = "OVERRIDE"

    @property
    def level(self) -> int:
        return _ASSIGNMENT_LEVELS[self]


_ASSIGNMENT_LEVELS = {
    AssignmentPriority.LOW: 1,
    AssignmentPriority.NORMAL: 5,
    AssignmentPriority.HIGH: 8,
    AssignmentPriority.OVERRIDE: 10,
}


class AssignmentStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PENDING = "PENDING"
    EXPIRED = "EXPIRED"
    SUSPENDED = "SUSPENDED"
    CANCELLED = "CANCELLED"


class ExceptionPriority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"

    @property
    def level(self) -> int:
        return _EXCEPTION_LEVELS[self]


_EXCEPTION_LEVELS = {
    ExceptionPriority.LOW: 1,
    ExceptionPriority.NORMAL: 5,
    ExceptionPriority.HIGH: 8,
    ExceptionPriority.URGENT: 10,
}


class ApprovalStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ExceptionCategory(str, Enum):
    ABSENCE = "ABSENCE"
    CHANGE = "CHANGE"
    REDUCTION = "REDUCTION"
    CUSTOM = "CUSTOM"


class ExceptionType(str, Enum):
    ABSENCE_VACATION = "ABSENCE_VACATION"
    ABSENCE_SICK = "ABSENCE_SICK"
    ABSENCE_SPECIAL = "ABSENCE_SPECIAL"
    CHANGE_COMPANY = "CHANGE_COMPANY"
    CHANGE_SWAP = "CHANGE_SWAP"
    CHANGE_SPECIAL = "CHANGE_SPECIAL"
    REDUCTION_PERSONAL = "REDUCTION_PERSONAL"
    REDUCTION_ROL = "REDUCTION_ROL"
    REDUCTION_UNION = "REDUCTION_UNION"
    CUSTOM = "CUSTOM"

    @property
    def category(self) -> ExceptionCategory:
        prefix = self.value.split("_", 1)[0]
        return ExceptionCategory(prefix)

    @property
    def requires_approval_default(self) -> bool:
        return self in _APPROVAL_REQUIRED

    @property
    def full_day_default(self) -> bool:
        return self.category is ExceptionCategory.ABSENCE


_APPROVAL_REQUIRED = frozenset(
    {
        ExceptionType.ABSENCE_SPECIAL,
        ExceptionType.CHANGE_COMPANY,
        ExceptionType.CHANGE_SWAP,
        ExceptionType.CHANGE_SPECIAL,
        ExceptionType.REDUCTION_PERSONAL,
        ExceptionType.CUSTOM,
    }
)


def _not_blank(value: str, label: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{label} must be non-empty")
    return value.strip()


class EndCondition(BaseModel):
    """How a recurrence stops: never, after ``count`` occurrences, or after ``until``.

    Attributes
    ----------
    type:
        One of ``NEVER``, ``COUNT`` or ``UNTIL``.
    count:
        Number of occurrences (``COUNT`` only). Calendar frequencies count worked days; cycle
        frequencies count complete cycle repetitions.
    until:
        Last date (inclusive) covered by the pattern (``UNTIL`` only).
    """

    type: EndType = EndType.NEVER
    count: int | None = None
    until: date | None = None

    @model_validator(mode="after")
    def _check_fields(self) -> EndCondition:
        if self.type is EndType.COUNT:
            if self.count is None or self.count < 1:
                raise ValueError("EndCondition COUNT requires count >= 1")
        if self.type is EndType.UNTIL and self.until is None:
            raise ValueError("EndCondition UNTIL requires an until date")
        return self

    @classmethod
    def never(cls) -> EndCondition:
        return cls()

    @classmethod
    def after(cls, count: int) -> EndCondition:
        return cls(type=EndType.COUNT, count=count)

    @classmethod
    def until_date(cls, until: date) -> EndCondition:
        return cls(type=EndType.UNTIL, until=until)


class PatternDay(BaseModel):
    """A single day of a cycle: worked on ``shift_id`` or rest when ``shift_id`` is ``None``."""

    day_number: int
    shift_id: str | None = None

    @field_validator("shift_id")
    @classmethod
    def _blank_is_rest(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None

    @property
    def is_rest(self) -> bool:
        return self.shift_id is None


def pattern_day_issues(days: Sequence[PatternDay], cycle_length: int | None) -> list[str]:
    """Return every structural problem with a cycle's day list (empty when valid)."""

    issues: list[str] = []
    if not days:
        issues.append("Pattern is empty: at least one pattern day is required")
        return issues
    numbers = [day.day_number for day in days]
    if len(set(numbers)) != len(numbers):
        duplicates = sorted({n for n in numbers if numbers.count(n) > 1})
        issues.append(f"Pattern day numbers contain duplicates: {duplicates}")
    elif numbers != list(range(1, len(numbers) + 1)):
        issues.append(
            f"Pattern day numbers are non-sequential: {numbers} (expected 1..{len(numbers)})"
        )
    if cycle_length is not None and cycle_length != len(days):
        issues.append(
            f"Cycle length mismatch: cycle_length={cycle_length} but {len(days)} pattern days"
        )
    return issues


class RecurrencePattern(BaseModel):
    """Recurrence definition mapping calendar dates to work or rest.

    Attributes
    ----------
    id:
        Unique pattern identifier referenced by ``ScheduleAssignment.pattern_id``.
    frequency:
        ``DAILY``/``WEEKLY``/``MONTHLY``/``YEARLY`` calendar rules, or ``ROTATION_CYCLE``/``CUSTOM``
        cycles driven by ``days``.
    interval:
        Repeat every N frequency units (>= 1).
    start_date:
        Anchor date; earlier dates are outside the pattern.
    end_condition:
        :class:`EndCondition` bounding the pattern.
    shift_id:
        Shift worked on matching dates (calendar frequencies only).
    days_of_week / week_start:
        Weekly rule inputs. ``days_of_week`` must be non-empty for ``WEEKLY``.
    by_month_day / by_month:
        Monthly/yearly filters (1..31, 1..12). Empty lists default to the start date values.
    cycle_length / days:
        Cycle definition. ``cycle_length`` defaults to ``len(days)`` and must match it.
    active:
        ``False`` once retired; retired patterns stay resolvable for history.
    """

    id: str
    name: str | None = None
    frequency: Frequency
    interval: int = 1
    start_date: date
    end_condition: EndCondition = EndCondition()
    shift_id: str | None = None
    days_of_week: list[Weekday] = []
    week_start: Weekday = Weekday.MONDAY
    by_month_day: list[int] = []
    by_month: list[int] = []
    cycle_length: int | None = None
    days: list[PatternDay] = []
    active: bool = True

    @field_validator("id")
    @classmethod
    def _id_not_blank(cls, value: str) -> str:
        return _not_blank(value, "RecurrencePattern.id")

    @field_validator("interval")
    @classmethod
    def _interval_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("RecurrencePattern.interval must be >= 1")
        return value

    @field_validator("by_month_day")
    @classmethod
    def _month_days_in_range(cls, value: list[int]) -> list[int]:
        if any(day < 1 or day > 31 for day in value):
            raise ValueError("RecurrencePattern.by_month_day values must be within 1..31")
        return sorted(set(value))

    @field_validator("by_month")
    @classmethod
    def _months_in_range(cls, value: list[int]) -> list[int]:
        if any(month < 1 or month > 12 for month in value):
            raise ValueError("RecurrencePattern.by_month values must be within 1..12")
        return sorted(set(value))

    @model_validator(mode="after")
    def _check_frequency_fields(self) -> RecurrencePattern:
        from shiftcycle.core.errors import PatternValidationError

        if self.frequency.is_cycle:
            if self.cycle_length is None:
                object.__setattr__(self, "cycle_length", len(self.days))
            issues = pattern_day_issues(self.days, self.cycle_length)
            if issues:
                raise PatternValidationError(issues)
            return self

        if self.shift_id is None or not self.shift_id.strip():
            raise ValueError(f"{self.frequency.value} patterns require a shift_id")
        if self.frequency is Frequency.WEEKLY and not self.days_of_week:
            raise ValueError("WEEKLY patterns require a non-empty days_of_week")
        return self

    def day(self, day_number: int) -> PatternDay | None:
        if 1 <= day_number <= len(self.days):
            return self.days[day_number - 1]
        return None

    def shift_ids(self) -> list[str]:
        """Return the distinct shift identifiers referenced by this pattern."""
        if not self.frequency.is_cycle:
            return [self.shift_id] if self.shift_id else []
        seen: list[str] = []
        for entry in self.days:
            if entry.shift_id and entry.shift_id not in seen:
                seen.append(entry.shift_id)
        return seen


class Team(BaseModel):
    """Team reference data (the fixed rotation uses half-teams ``A``..``I``)."""

    id: str
    name: str | None = None
    active: bool = True

    @field_validator("id")
    @classmethod
    def _id_not_blank(cls, value: str) -> str:
        return _not_blank(value, "Team.id")


class ScheduleAssignment(BaseModel):
    """Binds a user to a team and a recurrence pattern for a validity window.

    Attributes
    ----------
    id:
        Unique assignment identifier (final tie-break in resolution).
    user_id / team_id / pattern_id:
        Referenced user, team and :class:`RecurrencePattern`.
    start_date / end_date:
        Inclusive validity window; ``end_date=None`` is open-ended.
    priority:
        :class:`AssignmentPriority` used to pick the governing assignment.
    status:
        Lifecycle label; ``SUSPENDED`` and ``CANCELLED`` never govern.
    active:
        Administrative kill-switch (soft delete).
    """

    id: str
    user_id: str
    team_id: str
    pattern_id: str
    start_date: date
    end_date: date | None = None
    priority: AssignmentPriority = AssignmentPriority.NORMAL
    status: AssignmentStatus = AssignmentStatus.ACTIVE
    active: bool = True
    title: str | None = None

    @field_validator("id", "user_id", "team_id", "pattern_id")
    @classmethod
    def _ids_not_blank(cls, value: str, info: ValidationInfo) -> str:
        return _not_blank(value, f"ScheduleAssignment.{info.field_name}")

    @field_validator("end_date")
    @classmethod
    def _end_not_before_start(cls, value: date | None, info: ValidationInfo) -> date | None:
        start = info.data.get("start_date")
        if value is not None and start is not None and value < start:
            raise ValueError("ScheduleAssignment.end_date must be >= start_date")
        return value

    @property
    def is_open_ended(self) -> bool:
        return self.end_date is None

    def covers(self, day: date) -> bool:
        """Return ``True`` when ``day`` falls inside the validity window."""
        if day < self.start_date:
            return False
        return self.end_date is None or day <= self.end_date

    def overlaps(self, start: date, end: date | None) -> bool:
        """Return ``True`` when the validity window intersects ``[start, end]``."""
        if end is not None and end < self.start_date:
            return False
        return self.end_date is None or self.end_date >= start


class ScheduleException(BaseModel):
    """Date-scoped override of a user's base schedule.

    Attributes
    ----------
    id / user_id / target_date:
        Identity, affected user and the date the exception applies to.
    exception_type:
        Namespaced :class:`ExceptionType` (``ABSENCE_*``, ``CHANGE_*``, ``REDUCTION_*``,
        ``CUSTOM``).
    status / requires_approval:
        Approval workflow state. ``requires_approval`` defaults per type.
    priority:
        :class:`ExceptionPriority` used to resolve collisions on the same date.
    swap_with_user_id / replacement_user_id:
        Counterpart users for swaps and coverage.
    new_shift_id / new_start_time / new_end_time:
        Override payload for changes and reductions.
    approved_by / approved_at / rejection_reason:
        Audit fields written by the approval workflow.
    active:
        ``False`` once deactivated (soft delete).
    """

    id: str
    user_id: str
    target_date: date
    exception_type: ExceptionType
    status: ApprovalStatus = ApprovalStatus.DRAFT
    requires_approval: bool | None = None
    priority: ExceptionPriority = ExceptionPriority.NORMAL
    swap_with_user_id: str | None = None
    replacement_user_id: str | None = None
    new_shift_id: str | None = None
    new_start_time: time | None = None
    new_end_time: time | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    active: bool = True
    created_at: datetime | None = None
    notes: str | None = None
    metadata: dict[str, str] = {}

    @field_validator("id", "user_id")
    @classmethod
    def _ids_not_blank(cls, value: str, info: ValidationInfo) -> str:
        return _not_blank(value, f"ScheduleException.{info.field_name}")

    @field_validator("swap_with_user_id", "replacement_user_id", "new_shift_id")
    @classmethod
    def _optional_ids(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None

    @model_validator(mode="after")
    def _check_type_payload(self) -> ScheduleException:
        if self.requires_approval is None:
            object.__setattr__(
                self, "requires_approval", self.exception_type.requires_approval_default
            )
        if self.exception_type is ExceptionType.CHANGE_SWAP:
            if self.swap_with_user_id is None:
                raise ValueError("CHANGE_SWAP exceptions require swap_with_user_id")
            if self.swap_with_user_id == self.user_id:
                raise ValueError("CHANGE_SWAP cannot swap a user with themselves")
        if self.category is ExceptionCategory.REDUCTION:
            if self.new_start_time is None and self.new_end_time is None:
                raise ValueError(
                    f"{self.exception_type.value} exceptions require new_start_time or new_end_time"
                )
        if self.replacement_user_id is not None and self.replacement_user_id == self.user_id:
            raise ValueError("replacement_user_id must differ from user_id")
        return self

    @property
    def category(self) -> ExceptionCategory:
        return self.exception_type.category

    @property
    def is_pending(self) -> bool:
        return self.status is ApprovalStatus.PENDING


class Snapshot(BaseModel):
    """Consistent snapshot of the records a composition request needs.

    ``Snapshot`` mirrors the YAML/CSV bundle read by :func:`shiftcycle.snapshot.io.load_snapshot`.
    Identifiers are unique per record kind. Dangling references (an assignment naming an unknown
    pattern, an exception for an unknown user) are *not* rejected here: the composer records them
    as per-entry errors, and :meth:`reference_warnings` lists them for inspection.

    Attributes
    ----------
    name:
        Human-readable label surfaced in CLI output and telemetry.
    timeline:
        Optional :class:`~shiftcycle.scheduling.timeline.models.TimelineConfig`; defaults to the
        three rotation shifts without plant stops.
    teams / patterns / assignments / exceptions:
        Validated record lists.
    include_rotation:
        When ``True`` the fixed 9-team rotation patterns and teams are bootstrapped alongside the
        explicit records.
    rotation_start:
        Optional override of the rotation reference date.
    """

    name: str
    timeline: TimelineConfig | None = None
    teams: list[Team] = []
    patterns: list[RecurrencePattern] = []
    assignments: list[ScheduleAssignment] = []
    exceptions: list[ScheduleException] = []
    include_rotation: bool = False
    rotation_start: date | None = None

    @model_validator(mode="after")
    def _unique_ids(self) -> Snapshot:
        for label, records in (
            ("team", self.teams),
            ("pattern", self.patterns),
            ("assignment", self.assignments),
            ("exception", self.exceptions),
        ):
            seen: set[str] = set()
            for record in records:
                if record.id in seen:
                    raise ValueError(f"Duplicate {label} id '{record.id}'. IDs must be unique.")
                seen.add(record.id)
        return self

    def timeline_or_default(self) -> TimelineConfig:
        if self.timeline is not None:
            return self.timeline
        from shiftcycle.scheduling.timeline import default_timeline

        return default_timeline()

    def all_patterns(self) -> dict[str, RecurrencePattern]:
        """Return explicit patterns keyed by id, plus rotation patterns when enabled."""
        patterns: dict[str, RecurrencePattern] = {}
        if self.include_rotation:
            from shiftcycle.scheduling.rotation import bootstrap_rotation_patterns

            kwargs = {"start_date": self.rotation_start} if self.rotation_start else {}
            for pattern in bootstrap_rotation_patterns(**kwargs):
                patterns[pattern.id] = pattern
        for pattern in self.patterns:
            patterns[pattern.id] = pattern
        return patterns

    def all_teams(self) -> dict[str, Team]:
        teams: dict[str, Team] = {}
        if self.include_rotation:
            from shiftcycle.scheduling.rotation import rotation_teams

            teams.update({team.id: team for team in rotation_teams()})
        teams.update({team.id: team for team in self.teams})
        return teams

    def user_ids(self) -> list[str]:
        return sorted({assignment.user_id for assignment in self.assignments})

    def reference_warnings(self) -> list[str]:
        """Return human-readable notes about dangling references in the snapshot."""

        warnings: list[str] = []
        patterns = self.all_patterns()
        teams = self.all_teams()
        timeline = self.timeline_or_default()
        users = set(self.user_ids())
        for assignment in self.assignments:
            if assignment.pattern_id not in patterns:
                warnings.append(
                    f"Assignment {assignment.id} references unknown "
                    f"pattern_id={assignment.pattern_id}"
                )
            if teams and assignment.team_id not in teams:
                warnings.append(
                    f"Assignment {assignment.id} references unknown team_id={assignment.team_id}"
                )
        for pattern in patterns.values():
            for shift_id in pattern.shift_ids():
                if timeline.shift(shift_id) is None:
                    warnings.append(f"Pattern {pattern.id} references unknown shift_id={shift_id}")
        for exception in self.exceptions:
            if exception.user_id not in users:
                warnings.append(
                    f"Exception {exception.id} targets user {exception.user_id} without assignments"
                )
            if exception.new_shift_id and timeline.shift(exception.new_shift_id) is None:
                warnings.append(
                    f"Exception {exception.id} references unknown shift_id={exception.new_shift_id}"
                )
        return warnings


__all__ = [
    "Frequency",
    "EndType",
    "EndCondition",
    "Weekday",
    "PatternDay",
    "RecurrencePattern",
    "pattern_day_issues",
    "Team",
    "AssignmentPriority",
    "AssignmentStatus",
    "ScheduleAssignment",
    "ExceptionPriority",
    "ApprovalStatus",
    "ExceptionCategory",
    "ExceptionType",
    "ScheduleException",
    "Snapshot",
    "TimelineConfig",
]
