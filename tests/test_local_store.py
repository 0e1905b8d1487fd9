"""Offline snapshot, preferences and the local StoreAdapter."""

from __future__ import annotations

import json
from typing import Any

import pytest

from onceline.core.contracts import EventDraft, EventPatch, MessageDraft, Timeline
from onceline.core.errors import NotFoundError
from onceline.store import (
    ANONYMOUS_STORAGE_KEY,
    PREFERENCES_STORAGE_KEY,
    FileStorage,
    LocalTimelineStore,
    Preferences,
    PreferencesStore,
    SnapshotStore,
    StoreAdapter,
)


def test_file_storage_round_trip_and_remove(storage: FileStorage) -> None:
    assert storage.get_item("k") is None
    storage.set_item("k", "v1")
    storage.set_item("k", "v2")
    assert storage.get_item("k") == "v2"
    storage.remove_item("k")
    storage.remove_item("k")
    assert storage.get_item("k") is None


def test_file_storage_rejects_path_like_keys(storage: FileStorage) -> None:
    with pytest.raises(ValueError):
        storage.get_item("../escape")


def test_snapshot_load_missing_or_malformed_is_empty(storage: FileStorage) -> None:
    snapshots = SnapshotStore(storage)
    assert snapshots.load().is_empty

    storage.set_item(ANONYMOUS_STORAGE_KEY, "{not json")
    assert snapshots.load().is_empty

    storage.set_item(ANONYMOUS_STORAGE_KEY, "[1, 2]")
    assert snapshots.load().is_empty


def test_snapshot_load_skips_bad_rows_only(storage: FileStorage) -> None:
    storage.set_item(
        ANONYMOUS_STORAGE_KEY,
        json.dumps(
            {
                "events": [
                    {"id": "e1", "title": "Kept", "start_date": "2001-01-01"},
                    {"id": "e2", "title": ""},
                    "garbage",
                ],
                "messages": [{"id": "m1", "role": "user", "content": "hi"}],
            }
        ),
    )

    snap = SnapshotStore(storage).load()

    assert [e.id for e in snap.events] == ["e1"]
    assert snap.events[0].timeline_id == "anonymous"
    assert [m.content for m in snap.messages] == ["hi"]


def test_snapshot_save_failure_is_swallowed(storage: FileStorage, monkeypatch: Any) -> None:
    def broken(key: str, value: str) -> None:
        raise OSError("quota exceeded")

    monkeypatch.setattr(storage, "set_item", broken)
    SnapshotStore(storage).save(SnapshotStore(storage).load())


def test_preferences_use_their_own_slot(storage: FileStorage) -> None:
    prefs = PreferencesStore(storage)
    assert prefs.load().has_completed_onboarding is False

    prefs.save(Preferences(has_completed_onboarding=True))

    assert prefs.load().has_completed_onboarding is True
    assert storage.get_item(PREFERENCES_STORAGE_KEY) is not None
    assert storage.get_item(ANONYMOUS_STORAGE_KEY) is None


@pytest.mark.asyncio
async def test_local_store_persists_every_mutation(storage: FileStorage) -> None:
    store = LocalTimelineStore(SnapshotStore(storage))
    assert isinstance(store, StoreAdapter)

    event = (await store.insert_event("anonymous", EventDraft(title="First job", start_date="2010"))).unwrap()
    (await store.insert_message("anonymous", MessageDraft(role="user", content="hello"))).unwrap()
    updated = (await store.update_event(event.id, EventPatch(category="work"))).unwrap()

    assert updated.category == "work" and updated.title == "First job"

    reread = SnapshotStore(storage).load()
    assert [e.category for e in reread.events] == ["work"]
    assert [m.content for m in reread.messages] == ["hello"]

    (await store.delete_event(event.id)).unwrap()
    (await store.delete_all_messages("anonymous")).unwrap()
    assert SnapshotStore(storage).load().is_empty


@pytest.mark.asyncio
async def test_local_update_of_unknown_id_is_not_found(storage: FileStorage) -> None:
    store = LocalTimelineStore(SnapshotStore(storage))
    result = await store.update_event("nope", EventPatch(title="x"))
    assert isinstance(result.unwrap_err(), NotFoundError)


@pytest.mark.asyncio
async def test_local_rename_is_in_memory(storage: FileStorage) -> None:
    store = LocalTimelineStore(SnapshotStore(storage))
    renamed = (await store.rename_timeline(Timeline.anonymous(), "Draft")).unwrap()
    assert renamed.display_name == "Draft" and renamed.is_anonymous
    assert storage.get_item(ANONYMOUS_STORAGE_KEY) is None


def test_snapshot_load_tolerates_undecodable_bytes(storage: FileStorage) -> None:
    storage.set_item(ANONYMOUS_STORAGE_KEY, "placeholder")
    (storage.base_dir / f"{ANONYMOUS_STORAGE_KEY}.json").write_bytes(b"\xff\xfe{not json")

    assert SnapshotStore(storage).load().is_empty


def test_snapshot_load_skips_event_with_out_of_range_year(storage: FileStorage) -> None:
    storage.set_item(
        ANONYMOUS_STORAGE_KEY,
        json.dumps(
            {
                "events": [
                    {"id": "big", "title": "Far future", "start_date": 10**20},
                    {"id": "ok", "title": "Graduated", "start_date": "2012"},
                ]
            }
        ),
    )

    snap = SnapshotStore(storage).load()

    assert [e.id for e in snap.events] == ["ok"]


def test_preferences_load_tolerates_undecodable_bytes(storage: FileStorage) -> None:
    storage.set_item(PREFERENCES_STORAGE_KEY, "placeholder")
    (storage.base_dir / f"{PREFERENCES_STORAGE_KEY}.json").write_bytes(b"\xff\xfe")

    assert PreferencesStore(storage).load().has_completed_onboarding is False
