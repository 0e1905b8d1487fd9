"""The storage capability the engine is written against.

Both the offline snapshot store and the remote row store implement
:class:`StoreAdapter`, so the engine chooses an adapter by mode instead of
branching on the backend inside every operation. All methods are coroutines
and report failures as ``Err(StorageError | NotFoundError)`` rather than
raising.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from onceline.core.contracts import (
    ChatMessage,
    EventDraft,
    EventPatch,
    MessageDraft,
    Timeline,
    TimelineEvent,
)
from onceline.core.errors import NotFoundError, StorageError
from onceline.core.result import Result


@runtime_checkable
class StoreAdapter(Protocol):
    """Row operations scoped to one timeline."""

    async def list_events(self, timeline_id: str) -> Result[list[TimelineEvent], StorageError]: ...

    async def insert_event(
        self, timeline_id: str, draft: EventDraft
    ) -> Result[TimelineEvent, StorageError]: ...

    async def update_event(
        self, event_id: str, patch: EventPatch
    ) -> Result[TimelineEvent, StorageError | NotFoundError]: ...

    async def delete_event(self, event_id: str) -> Result[None, StorageError]: ...

    async def list_messages(self, timeline_id: str) -> Result[list[ChatMessage], StorageError]: ...

    async def insert_message(
        self, timeline_id: str, message: MessageDraft
    ) -> Result[ChatMessage, StorageError]: ...

    async def delete_all_messages(self, timeline_id: str) -> Result[None, StorageError]: ...

    async def rename_timeline(
        self, timeline: Timeline, name: str
    ) -> Result[Timeline, StorageError]: ...


__all__ = ["StoreAdapter"]
