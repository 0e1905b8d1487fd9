from __future__ import annotations

from .reconciler import MAX_ZOOM, MIN_ZOOM, MigrationReport, TimelineEngine
from .state import Mode, StateStore, TimelineState

__all__ = [
    "MAX_ZOOM",
    "MIN_ZOOM",
    "MigrationReport",
    "Mode",
    "StateStore",
    "TimelineEngine",
    "TimelineState",
]
