"""Core utilities shared across shiftcycle modules."""

from .errors import (
    InvalidTransitionError,
    PatternValidationError,
    ResolutionAmbiguityWarning,
    ShiftCycleValueError,
)

__all__ = [
    "ShiftCycleValueError",
    "PatternValidationError",
    "InvalidTransitionError",
    "ResolutionAmbiguityWarning",
]
