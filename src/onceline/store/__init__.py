from __future__ import annotations

from .base import StoreAdapter
from .local import (
    ANONYMOUS_STORAGE_KEY,
    PREFERENCES_STORAGE_KEY,
    LocalTimelineStore,
    Preferences,
    PreferencesStore,
    SnapshotStore,
)
from .remote import RemoteStore
from .storage import FileStorage

__all__ = [
    "ANONYMOUS_STORAGE_KEY",
    "PREFERENCES_STORAGE_KEY",
    "FileStorage",
    "LocalTimelineStore",
    "Preferences",
    "PreferencesStore",
    "RemoteStore",
    "SnapshotStore",
    "StoreAdapter",
]
