"""Shift-rotation schedule resolution."""

__version__ = "0.1.0"
