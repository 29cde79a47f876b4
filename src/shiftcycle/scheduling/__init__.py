"""Scheduling reference data (timeline, fixed rotation scheme)."""

from .timeline import PlantStop, ShiftDefinition, TimelineConfig

__all__ = ["ShiftDefinition", "TimelineConfig", "PlantStop"]
