"""Snapshot contract and loaders."""

from .contract import Snapshot
from .io import load_snapshot

__all__ = ["Snapshot", "load_snapshot"]
