"""Fixed continuous rotation scheme."""

from .models import (
    HALF_TEAMS,
    REFERENCE_START_DATE,
    ROTATION_SCHEME,
    ROTATION_SHIFT_IDS,
    RotationScheme,
    bootstrap_rotation_patterns,
    default_rotation_scheme,
    rotation_pattern_id,
    rotation_teams,
    teams_off_on,
    teams_working_on,
)

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
