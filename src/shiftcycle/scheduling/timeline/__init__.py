"""Timeline configuration (shift definitions, plant stops)."""

from .models import PlantStop, ShiftDefinition, TimelineConfig, default_shifts, default_timeline

__all__ = ["ShiftDefinition", "PlantStop", "TimelineConfig", "default_shifts", "default_timeline"]
