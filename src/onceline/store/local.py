"""
Offline persistence for the anonymous timeline.

Responsibilities
----------------
- :class:`SnapshotStore`: load/save the :class:`AnonymousSnapshot` held in a
  single durable slot. Loading never raises (missing or malformed data yields
  an empty snapshot); saving is best-effort (failures are logged and
  swallowed so a lost cache write never blocks the caller).
- :class:`PreferencesStore`: the UI preference slot (onboarding flag), kept
  under a key distinct from the snapshot.
- :class:`LocalTimelineStore`: the :class:`~onceline.store.base.StoreAdapter`
  used in local mode. Each mutation updates a cached snapshot and rewrites
  it whole.
"""

from __future__ import annotations

import json
from typing import Any, Final

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from onceline.core.contracts import (
    ANONYMOUS_TIMELINE_ID,
    AnonymousSnapshot,
    ChatMessage,
    EventDraft,
    EventPatch,
    MessageDraft,
    Timeline,
    TimelineEvent,
    new_id,
    utcnow,
)
from onceline.core.errors import NotFoundError, StorageError
from onceline.core.ordering import sort_events_by_date
from onceline.core.result import Result, err, ok
from onceline.core.settings import get_logger

from .storage import FileStorage

#: Slot holding the offline snapshot.
ANONYMOUS_STORAGE_KEY: Final[str] = "onceline_anonymous_data"
#: Slot holding UI preferences; never shared with the snapshot.
PREFERENCES_STORAGE_KEY: Final[str] = "onceline-storage"

logger = get_logger(__name__)


def _validate_rows(raw: Any, model: type[BaseModel], label: str) -> list[Any]:
    """Validate a list of stored rows, skipping (and logging) unusable entries."""
    if not isinstance(raw, list):
        return []
    rows: list[Any] = []
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            logger.warning("Skipping non-object %s #%d in offline snapshot", label, idx)
            continue
        item.setdefault("timeline_id", ANONYMOUS_TIMELINE_ID)
        try:
            rows.append(model.model_validate(item))
        except SchemaError as exc:
            logger.warning("Skipping malformed %s #%d in offline snapshot: %s", label, idx, exc)
    return rows


class SnapshotStore:
    """Load/save contract over the anonymous snapshot slot."""

    def __init__(self, storage: FileStorage, key: str = ANONYMOUS_STORAGE_KEY) -> None:
        self.storage = storage
        self.key = key

    def load(self) -> AnonymousSnapshot:
        """Return the stored snapshot, or an empty one if missing or unreadable."""
        try:
            raw = self.storage.get_item(self.key)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Could not read offline snapshot: %s", exc)
            return AnonymousSnapshot()
        if raw is None:
            return AnonymousSnapshot()

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Offline snapshot is not valid JSON, starting empty: %s", exc)
            return AnonymousSnapshot()
        if not isinstance(payload, dict):
            logger.warning("Offline snapshot root is not an object, starting empty")
            return AnonymousSnapshot()

        return AnonymousSnapshot(
            events=_validate_rows(payload.get("events"), TimelineEvent, "event"),
            messages=_validate_rows(payload.get("messages"), ChatMessage, "message"),
        )

    def save(self, snapshot: AnonymousSnapshot) -> None:
        """Write the snapshot; a failed write is logged, never raised."""
        try:
            self.storage.set_item(self.key, snapshot.to_json())
        except OSError as exc:
            logger.error("Failed to persist offline snapshot: %s", exc)

    def clear(self) -> None:
        """Remove the snapshot slot; failures are logged."""
        try:
            self.storage.remove_item(self.key)
        except OSError as exc:
            logger.error("Failed to clear offline snapshot: %s", exc)


class Preferences(BaseModel):
    """UI preferences that survive restarts."""

    has_completed_onboarding: bool = False


class PreferencesStore:
    """Load/save contract over the preference slot."""

    def __init__(self, storage: FileStorage, key: str = PREFERENCES_STORAGE_KEY) -> None:
        self.storage = storage
        self.key = key

    def load(self) -> Preferences:
        try:
            raw = self.storage.get_item(self.key)
            return Preferences.model_validate_json(raw) if raw else Preferences()
        except (OSError, UnicodeDecodeError, SchemaError) as exc:
            logger.warning("Ignoring unreadable preferences: %s", exc)
            return Preferences()

    def save(self, prefs: Preferences) -> None:
        try:
            self.storage.set_item(self.key, prefs.model_dump_json())
        except OSError as exc:
            logger.error("Failed to persist preferences: %s", exc)


class LocalTimelineStore:
    """:class:`StoreAdapter` backed by the offline snapshot.

    Every mutating call rewrites the whole snapshot. Because snapshot writes
    are best-effort, every operation returns ``Ok``; the in-process cache
    keeps the session consistent even when the disk write failed.
    """

    def __init__(self, snapshots: SnapshotStore) -> None:
        self.snapshots = snapshots
        self._cache: AnonymousSnapshot | None = None

    # ------------------------------ Snapshot API ------------------------------

    def load(self) -> AnonymousSnapshot:
        """Re-read the snapshot from its slot and return a private copy."""
        self._cache = self.snapshots.load()
        return self._cache.model_copy(deep=True)

    def clear(self) -> None:
        """Drop the snapshot both on disk and in the cache."""
        self.snapshots.clear()
        self._cache = AnonymousSnapshot()

    def _current(self) -> AnonymousSnapshot:
        if self._cache is None:
            self._cache = self.snapshots.load()
        return self._cache

    def _commit(self) -> None:
        self.snapshots.save(self._current())

    # ------------------------------ StoreAdapter ------------------------------

    async def list_events(self, timeline_id: str) -> Result[list[TimelineEvent], StorageError]:
        return ok(sort_events_by_date(self._current().events))

    async def insert_event(
        self, timeline_id: str, draft: EventDraft
    ) -> Result[TimelineEvent, StorageError]:
        now = utcnow()
        try:
            event = TimelineEvent.model_validate(
                {
                    **draft.model_dump(),
                    "id": new_id(),
                    "timeline_id": timeline_id,
                    "created_at": now,
                    "updated_at": now,
                }
            )
        except SchemaError as exc:
            return err(StorageError(f"event rejected by offline store: {exc}"))
        self._current().events.append(event)
        self._commit()
        return ok(event)

    async def update_event(
        self, event_id: str, patch: EventPatch
    ) -> Result[TimelineEvent, StorageError | NotFoundError]:
        events = self._current().events
        for idx, existing in enumerate(events):
            if existing.id != event_id:
                continue
            try:
                updated = TimelineEvent.model_validate(
                    {
                        **existing.model_dump(),
                        **patch.model_dump(exclude_unset=True),
                        "updated_at": utcnow(),
                    }
                )
            except SchemaError as exc:
                return err(StorageError(f"update rejected by offline store: {exc}"))
            events[idx] = updated
            self._commit()
            return ok(updated)
        return err(NotFoundError(f"event {event_id} not found", entity_id=event_id))

    async def delete_event(self, event_id: str) -> Result[None, StorageError]:
        snapshot = self._current()
        remaining = [e for e in snapshot.events if e.id != event_id]
        if len(remaining) != len(snapshot.events):
            snapshot.events = remaining
            self._commit()
        return ok(None)

    async def list_messages(self, timeline_id: str) -> Result[list[ChatMessage], StorageError]:
        return ok(list(self._current().messages))

    async def insert_message(
        self, timeline_id: str, message: MessageDraft
    ) -> Result[ChatMessage, StorageError]:
        stored = ChatMessage(
            id=new_id(),
            timeline_id=timeline_id,
            role=message.role,
            content=message.content,
            created_event_ids=list(message.created_event_ids),
            created_at=message.created_at or utcnow(),
        )
        self._current().messages.append(stored)
        self._commit()
        return ok(stored)

    async def delete_all_messages(self, timeline_id: str) -> Result[None, StorageError]:
        self._current().messages = []
        self._commit()
        return ok(None)

    async def rename_timeline(self, timeline: Timeline, name: str) -> Result[Timeline, StorageError]:
        # The anonymous timeline has no row of its own; the name lives in memory only.
        return ok(timeline.model_copy(update={"display_name": name, "updated_at": utcnow()}))


__all__ = [
    "ANONYMOUS_STORAGE_KEY",
    "PREFERENCES_STORAGE_KEY",
    "Preferences",
    "PreferencesStore",
    "SnapshotStore",
    "LocalTimelineStore",
]
