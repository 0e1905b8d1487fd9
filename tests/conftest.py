"""Shared fixtures and in-memory fakes for the onceline test suite.

Fakes
-----
- :class:`FakeAssistant` returns scripted ``Result`` values and records every
  ``converse`` call (history + event context).
- :class:`FakeRemote` is a dict-backed stand-in for ``RemoteStore`` with
  per-operation failure injection (``fail_on``) and an optional ``gate`` that
  suspends an operation until the test releases it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from typing import Any

import pytest

from onceline.core.contracts import (
    ChatMessage,
    EventDraft,
    EventPatch,
    MessageDraft,
    Timeline,
    TimelineEvent,
    new_id,
    utcnow,
)
from onceline.core.errors import AssistantError, NotFoundError, StorageError
from onceline.core.ordering import sort_events_by_date
from onceline.core.result import Result, err, ok
from onceline.engine import TimelineEngine
from onceline.llm.assistant import AssistantReply
from onceline.store import FileStorage, LocalTimelineStore, PreferencesStore, SnapshotStore


class FakeAssistant:
    """Scripted assistant: pops one queued result per call."""

    def __init__(self, *results: Result[AssistantReply, AssistantError]) -> None:
        self.results = list(results)
        self.calls: list[tuple[list[dict[str, str]], str]] = []

    def reply(self, text: str, events: Sequence[Mapping[str, Any]] = ()) -> FakeAssistant:
        drafts = [EventDraft.model_validate({**e, "source": "chat"}) for e in events]
        self.results.append(ok(AssistantReply(reply=text, proposed_events=drafts)))
        return self

    def fail(self, message: str = "boom") -> FakeAssistant:
        self.results.append(err(AssistantError(message)))
        return self

    async def converse(
        self, history: Sequence[Mapping[str, str]], event_context: str
    ) -> Result[AssistantReply, AssistantError]:
        self.calls.append(([dict(h) for h in history], event_context))
        if not self.results:
            return err(AssistantError("no scripted reply"))
        return self.results.pop(0)


class FakeRemote:
    """In-memory remote store keyed by timeline id."""

    def __init__(self) -> None:
        self.timelines: dict[str, Timeline] = {}
        self.events: dict[str, TimelineEvent] = {}
        self.messages: list[ChatMessage] = []
        self.fail_on: dict[str, Callable[[int], bool]] = {}
        self.counts: dict[str, int] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.session: str | None = None
        self.closed = False

    # --- test controls ----------------------------------------------------
    def fail(self, op: str, when: Callable[[int], bool] = lambda _n: True) -> None:
        """Make the ``n``-th call (1-based) of ``op`` fail when ``when(n)`` is true."""
        self.fail_on[op] = when

    def gate(self, op: str) -> asyncio.Event:
        """Suspend ``op`` until the returned event is set."""
        self.gates[op] = asyncio.Event()
        return self.gates[op]

    async def _enter(self, op: str) -> StorageError | None:
        self.counts[op] = self.counts.get(op, 0) + 1
        if op in self.gates:
            await self.gates[op].wait()
        check = self.fail_on.get(op)
        if check is not None and check(self.counts[op]):
            return StorageError(f"{op} failed")
        return None

    def writes(self) -> int:
        return sum(
            n for op, n in self.counts.items() if op.startswith(("insert", "create", "update", "delete"))
        )

    # --- RemoteStore surface ---------------------------------------------
    def set_session(self, access_token: str | None) -> None:
        self.session = access_token

    async def aclose(self) -> None:
        self.closed = True

    async def find_timeline_by_owner(self, owner_id: str) -> Result[Timeline | None, StorageError]:
        if (failure := await self._enter("find_timeline_by_owner")) is not None:
            return err(failure)
        return ok(next((t for t in self.timelines.values() if t.owner == owner_id), None))

    async def create_timeline(self, owner_id: str, name: str) -> Result[Timeline, StorageError]:
        if (failure := await self._enter("create_timeline")) is not None:
            return err(failure)
        timeline = Timeline(id=new_id(), owner=owner_id, display_name=name)
        self.timelines[timeline.id] = timeline
        return ok(timeline)

    async def rename_timeline(self, timeline: Timeline, name: str) -> Result[Timeline, StorageError]:
        if (failure := await self._enter("rename_timeline")) is not None:
            return err(failure)
        renamed = timeline.model_copy(update={"display_name": name})
        self.timelines[timeline.id] = renamed
        return ok(renamed)

    async def list_events(self, timeline_id: str) -> Result[list[TimelineEvent], StorageError]:
        if (failure := await self._enter("list_events")) is not None:
            return err(failure)
        rows = [e for e in self.events.values() if e.timeline_id == timeline_id]
        return ok(sort_events_by_date(rows))

    async def insert_event(self, timeline_id: str, draft: EventDraft) -> Result[TimelineEvent, StorageError]:
        if (failure := await self._enter("insert_event")) is not None:
            return err(failure)
        event = TimelineEvent.model_validate(
            {**draft.model_dump(), "id": new_id(), "timeline_id": timeline_id}
        )
        self.events[event.id] = event
        return ok(event)

    async def update_event(
        self, event_id: str, patch: EventPatch
    ) -> Result[TimelineEvent, StorageError | NotFoundError]:
        if (failure := await self._enter("update_event")) is not None:
            return err(failure)
        if event_id not in self.events:
            return err(NotFoundError("missing", entity_id=event_id))
        updated = TimelineEvent.model_validate(
            {**self.events[event_id].model_dump(), **patch.model_dump(exclude_unset=True)}
        )
        self.events[event_id] = updated
        return ok(updated)

    async def delete_event(self, event_id: str) -> Result[None, StorageError]:
        if (failure := await self._enter("delete_event")) is not None:
            return err(failure)
        self.events.pop(event_id, None)
        return ok(None)

    async def list_messages(self, timeline_id: str) -> Result[list[ChatMessage], StorageError]:
        if (failure := await self._enter("list_messages")) is not None:
            return err(failure)
        rows = [m for m in self.messages if m.timeline_id == timeline_id]
        return ok(sorted(rows, key=lambda m: m.created_at))

    async def insert_message(self, timeline_id: str, message: MessageDraft) -> Result[ChatMessage, StorageError]:
        if (failure := await self._enter("insert_message")) is not None:
            return err(failure)
        stored = ChatMessage(
            id=new_id(),
            timeline_id=timeline_id,
            role=message.role,
            content=message.content,
            created_event_ids=list(message.created_event_ids),
            created_at=message.created_at or utcnow(),
        )
        self.messages.append(stored)
        return ok(stored)

    async def delete_all_messages(self, timeline_id: str) -> Result[None, StorageError]:
        if (failure := await self._enter("delete_all_messages")) is not None:
            return err(failure)
        self.messages = [m for m in self.messages if m.timeline_id != timeline_id]
        return ok(None)


@pytest.fixture
def storage(tmp_path: Any) -> FileStorage:
    return FileStorage(tmp_path / "data")


@pytest.fixture
def assistant() -> FakeAssistant:
    return FakeAssistant()


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def make_engine(storage: FileStorage, assistant: FakeAssistant, remote: FakeRemote) -> Callable[..., TimelineEngine]:
    """Factory building an engine over the shared storage, fake assistant and fake remote."""

    def _make(*, with_remote: bool = True) -> TimelineEngine:
        return TimelineEngine(
            LocalTimelineStore(SnapshotStore(storage)),
            assistant,
            remote=remote if with_remote else None,  # type: ignore[arg-type]
            preferences=PreferencesStore(storage),
        )

    return _make
