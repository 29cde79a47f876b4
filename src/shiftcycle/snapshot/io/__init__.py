"""Snapshot IO helpers."""

from .loaders import load_snapshot, read_csv

__all__ = ["load_snapshot", "read_csv"]
