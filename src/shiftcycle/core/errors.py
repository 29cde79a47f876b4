"""Common shiftcycle-specific exceptions and warnings."""

from __future__ import annotations

from collections.abc import Sequence


class ShiftCycleValueError(ValueError):
    """Raised when shiftcycle detects invalid user-provided data."""


class PatternValidationError(ShiftCycleValueError):
    """Raised when a recurrence pattern is rejected at creation time.

    ``issues`` keeps every problem found so callers can show them all at once; the exception
    message joins them.
    """

    def __init__(self, issues: Sequence[str]) -> None:
        self.issues = tuple(issues)
        super().__init__("; ".join(self.issues) or "Invalid recurrence pattern")


class InvalidTransitionError(ShiftCycleValueError):
    """Raised when an exception approval transition is not allowed from its current state."""


class ResolutionAmbiguityWarning(RuntimeWarning):
    """Two assignments tie on priority and start date for the same user/date."""


__all__ = [
    "ShiftCycleValueError",
    "PatternValidationError",
    "InvalidTransitionError",
    "ResolutionAmbiguityWarning",
]
