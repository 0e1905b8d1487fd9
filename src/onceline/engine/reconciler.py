"""
Timeline engine: one in-memory truth reconciled with a local or remote store.

Responsibilities
----------------
- Decide which :class:`~onceline.store.base.StoreAdapter` backs the active
  timeline (offline snapshot while anonymous, remote rows once signed in).
- Keep the observable :class:`~onceline.engine.state.TimelineState`
  consistent: events sorted by date, messages append-only.
- Run the chat round trip: persist the user turn, ask the assistant, add the
  proposed events, persist the reply. Chat failures never escape.
- Move anonymous data into the remote store exactly once when an identity
  becomes available.

Error policy
------------
Adapters return ``Result`` values; the engine turns them into behaviour:

==========================  ==============================================
operation                   on ``Err``
==========================  ==============================================
``init_as_remote``          record ``load_error`` and raise ``StorageError``
``add/update/delete_event`` raise; in-memory state unchanged
``send_message``            substitute the apology message; never raise
migration item              log, skip, continue with the next item
offline snapshot write      logged and swallowed inside the local store
==========================  ==============================================

Concurrency
-----------
Everything runs on one event loop. After each ``await`` an operation re-reads
the current state and applies only its own delta (one event or message), and
drops that delta if the active timeline changed meanwhile.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date
from typing import Any, Final

from pydantic import ValidationError as SchemaError

from onceline.core.contracts import (
    AnonymousSnapshot,
    ChatMessage,
    EventDraft,
    EventPatch,
    Identity,
    MessageDraft,
    Timeline,
    TimelineEvent,
    new_id,
)
from onceline.core.errors import AssistantError, NotFoundError, StorageError, ValidationError
from onceline.core.ordering import sort_events_by_date
from onceline.core.result import Result
from onceline.core.settings import Settings, get_logger, load_settings
from onceline.llm.assistant import (
    APOLOGY_MESSAGE,
    Assistant,
    AssistantClient,
    AssistantReply,
    build_event_context,
)
from onceline.store.base import StoreAdapter
from onceline.store.local import LocalTimelineStore, PreferencesStore, SnapshotStore
from onceline.store.remote import RemoteStore
from onceline.store.storage import FileStorage

from .state import Listener, Mode, StateStore, TimelineState

logger = get_logger(__name__)

MIN_ZOOM: Final[float] = 0.5
MAX_ZOOM: Final[float] = 2.0


@dataclass(frozen=True, slots=True)
class MigrationReport:
    """Outcome of moving an anonymous snapshot into the remote store."""

    events_migrated: int = 0
    events_failed: int = 0
    messages_migrated: int = 0
    messages_failed: int = 0

    @property
    def attempted(self) -> int:
        return (
            self.events_migrated + self.events_failed + self.messages_migrated + self.messages_failed
        )


class TimelineEngine:
    """Owns the active timeline's state and mediates every change to it.

    Parameters
    ----------
    local:
        Offline adapter; always present, it also owns the anonymous snapshot.
    assistant:
        Anything implementing :class:`~onceline.llm.assistant.Assistant`.
    remote:
        Remote adapter; ``None`` disables :meth:`init_as_remote`.
    preferences:
        Store for the onboarding flag; ``None`` keeps it in memory only.
    default_timeline_name:
        Name used for the anonymous timeline and for newly created remote ones.
    """

    def __init__(
        self,
        local: LocalTimelineStore,
        assistant: Assistant,
        *,
        remote: RemoteStore | None = None,
        preferences: PreferencesStore | None = None,
        default_timeline_name: str = "My Life",
    ) -> None:
        self._local = local
        self._remote = remote
        self._assistant = assistant
        self._preferences = preferences
        self._default_name = default_timeline_name
        self._switching_to_remote = False

        onboarded = preferences.load().has_completed_onboarding if preferences else False
        self._store = StateStore(TimelineState(has_completed_onboarding=onboarded))

    @classmethod
    def from_settings(
        cls,
        config: Settings | None = None,
        *,
        assistant: Assistant | None = None,
        remote: RemoteStore | None = None,
    ) -> TimelineEngine:
        """Compose an engine from configuration (file-backed local store, optional remote)."""
        config = config or load_settings()
        storage = FileStorage(config.data_dir)
        if remote is None and config.remote_configured:
            remote = RemoteStore.from_settings(config)
        return cls(
            LocalTimelineStore(SnapshotStore(storage)),
            assistant or AssistantClient.from_settings(config),
            remote=remote,
            preferences=PreferencesStore(storage),
            default_timeline_name=config.default_timeline_name,
        )

    async def aclose(self) -> None:
        if self._remote is not None:
            await self._remote.aclose()

    # ------------------------------------------------------------------ #
    # Observables
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> TimelineState:
        return self._store.get()

    @property
    def mode(self) -> Mode:
        return self._store.get().mode

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with the new state after every change."""
        return self._store.subscribe(listener)

    # ------------------------------------------------------------------ #
    # Initialisation
    # ------------------------------------------------------------------ #
    def init_as_local(self) -> TimelineState:
        """Install the anonymous timeline from the offline snapshot. Never fails."""
        snapshot = self._local.load()
        logger.info(
            "Local timeline loaded (%d events, %d messages)",
            len(snapshot.events),
            len(snapshot.messages),
        )
        return self._store.reset(
            timeline=Timeline.anonymous(self._default_name),
            events=sort_events_by_date(snapshot.events),
            messages=snapshot.messages,
            mode=Mode.LOCAL,
            is_loading=False,
            has_completed_onboarding=self._store.get().has_completed_onboarding,
        )

    def sign_out(self) -> TimelineState:
        """Drop the remote view and start a fresh local session."""
        return self.init_as_local()

    async def init_as_remote(self, identity: Identity) -> TimelineState:
        """Find or create ``identity``'s timeline, migrate offline data, load rows.

        Until it returns, local event and chat writes are refused so nothing is
        added to a snapshot that is about to be cleared.

        Raises
        ------
        StorageError
            If the remote store is unreachable or misconfigured. The engine is
            left without an active timeline and with ``load_error`` set; it
            does not fall back to local mode.
        """
        onboarded = self._store.get().has_completed_onboarding
        self._store.update(is_loading=True, load_error=None)
        self._switching_to_remote = True
        try:
            remote = self._require_remote()
            if identity.access_token:
                remote.set_session(identity.access_token)

            timeline = (await self._find_or_create_timeline(remote, identity)).raise_if_err()

            snapshot = self._local.load()
            if not snapshot.is_empty:
                await self._migrate_snapshot(remote, timeline, snapshot)

            events = (await remote.list_events(timeline.id)).raise_if_err()
            messages = (await remote.list_messages(timeline.id)).raise_if_err()
        except StorageError as exc:
            logger.error("Remote initialisation failed for %s: %s", identity.user_id, exc)
            self._store.reset(
                is_loading=False, load_error=exc.message, has_completed_onboarding=onboarded
            )
            raise
        finally:
            self._switching_to_remote = False

        logger.info(
            "Remote timeline %s loaded (%d events, %d messages)",
            timeline.id,
            len(events),
            len(messages),
        )
        return self._store.reset(
            timeline=timeline,
            events=sort_events_by_date(events),
            messages=messages,
            mode=Mode.REMOTE,
            is_loading=False,
            has_completed_onboarding=onboarded,
        )

    async def _find_or_create_timeline(
        self, remote: RemoteStore, identity: Identity
    ) -> Result[Timeline, StorageError]:
        found = await remote.find_timeline_by_owner(identity.user_id)
        if found.is_err() or found.unwrap() is not None:
            return found  # type: ignore[return-value]
        logger.info("No timeline for %s yet; creating one", identity.user_id)
        return await remote.create_timeline(identity.user_id, self._default_name)

    def _require_remote(self) -> RemoteStore:
        if self._remote is None:
            raise StorageError("remote store is not configured")
        return self._remote

    # ------------------------------------------------------------------ #
    # Migration
    # ------------------------------------------------------------------ #
    async def migrate(self) -> MigrationReport:
        """Move any offline snapshot into the active remote timeline and reload.

        An empty snapshot is a no-op with zero remote writes.
        """
        state = self._store.get()
        if state.mode is not Mode.REMOTE or state.timeline is None:
            raise StorageError("migration needs an active remote timeline")
        remote = self._require_remote()

        snapshot = self._local.load()
        if snapshot.is_empty:
            return MigrationReport()
        report = await self._migrate_snapshot(remote, state.timeline, snapshot)
        await self.reload()
        return report

    async def _migrate_snapshot(
        self, remote: RemoteStore, timeline: Timeline, snapshot: AnonymousSnapshot
    ) -> MigrationReport:
        """Re-insert every offline item under ``timeline``; best-effort, then clear."""
        id_map: dict[str, str] = {}
        events_failed = 0
        for event in snapshot.events:
            draft = EventDraft.model_validate(event.model_dump(include=set(EventDraft.model_fields)))
            inserted = await remote.insert_event(timeline.id, draft)
            if inserted.is_err():
                events_failed += 1
                logger.warning("Skipping offline event %r: %s", event.title, inserted.unwrap_err())
                continue
            id_map[event.id] = inserted.unwrap().id

        messages_migrated = messages_failed = 0
        for message in snapshot.messages:
            draft_msg = MessageDraft(
                role=message.role,
                content=message.content,
                created_event_ids=[id_map[i] for i in message.created_event_ids if i in id_map],
                created_at=message.created_at,
            )
            stored = await remote.insert_message(timeline.id, draft_msg)
            if stored.is_err():
                messages_failed += 1
                logger.warning("Skipping offline message %s: %s", message.id, stored.unwrap_err())
                continue
            messages_migrated += 1

        self._local.clear()
        report = MigrationReport(
            events_migrated=len(id_map),
            events_failed=events_failed,
            messages_migrated=messages_migrated,
            messages_failed=messages_failed,
        )
        logger.info("Offline data migrated to %s: %s", timeline.id, report)
        return report

    # ------------------------------------------------------------------ #
    # Events
    # ------------------------------------------------------------------ #
    async def reload(self) -> TimelineState:
        """Re-read events and messages of the active timeline from its adapter."""
        adapter, timeline_id = self._active()
        events = (await adapter.list_events(timeline_id)).raise_if_err()
        messages = (await adapter.list_messages(timeline_id)).raise_if_err()
        current = self._store.get()
        if current.timeline_id != timeline_id:
            return current
        return self._store.update(events=sort_events_by_date(events), messages=messages)

    async def add_event(self, draft: EventDraft | Mapping[str, Any]) -> TimelineEvent:
        """Persist a new event and insert it into the sorted collection.

        Raises
        ------
        ValidationError
            If the title is empty or the draft is malformed.
        StorageError
            If the active adapter fails; nothing changes in memory.
        """
        event_draft = _coerce_draft(draft)
        title = event_draft.title.strip()
        if not title:
            raise ValidationError("Event title is required")
        event_draft = event_draft.model_copy(update={"title": title})

        adapter, timeline_id = self._active()
        return await self._insert_event(adapter, timeline_id, event_draft)

    async def _insert_event(
        self, adapter: StoreAdapter, timeline_id: str, draft: EventDraft
    ) -> TimelineEvent:
        event = (await adapter.insert_event(timeline_id, draft)).raise_if_err()
        current = self._store.get()
        if current.timeline_id == timeline_id:
            self._store.update(
                events=sort_events_by_date([*current.events, event]),
                newly_added_event_id=event.id,
            )
        return event

    async def update_event(self, event_id: str, patch: EventPatch | Mapping[str, Any]) -> TimelineEvent:
        """Apply ``patch`` to an event of the active timeline and re-sort.

        Raises
        ------
        NotFoundError
            If ``event_id`` is not part of the active timeline.
        ValidationError
            If the patch is malformed or blanks the title.
        StorageError
            If the active adapter fails.
        """
        event_patch = _coerce_patch(patch)
        if "title" in event_patch.model_fields_set:
            title = (event_patch.title or "").strip()
            if not title:
                raise ValidationError("Event title is required")
            event_patch = event_patch.model_copy(update={"title": title})

        adapter, timeline_id = self._active()
        if self._store.get().find_event(event_id) is None:
            raise NotFoundError(f"Event {event_id} is not on this timeline", entity_id=event_id)

        updated = (await adapter.update_event(event_id, event_patch)).raise_if_err()

        current = self._store.get()
        if current.timeline_id == timeline_id:
            events = [updated if e.id == event_id else e for e in current.events]
            self._store.update(events=sort_events_by_date(events))
        return updated

    async def delete_event(self, event_id: str) -> None:
        """Delete an event; deleting an absent id is a no-op."""
        adapter, timeline_id = self._active()
        (await adapter.delete_event(event_id)).raise_if_err()

        current = self._store.get()
        if current.timeline_id != timeline_id or current.find_event(event_id) is None:
            return
        self._store.update(
            events=[e for e in current.events if e.id != event_id],
            selected_event_id=None if current.selected_event_id == event_id else current.selected_event_id,
            newly_added_event_id=(
                None if current.newly_added_event_id == event_id else current.newly_added_event_id
            ),
        )

    # ------------------------------------------------------------------ #
    # Chat
    # ------------------------------------------------------------------ #
    async def send_message(self, text: str) -> None:
        """Send one user turn through the assistant. Never raises.

        Empty input, or no active timeline, is ignored without any state
        change. Otherwise ``is_sending`` is true for the whole call, and a
        failed round trip leaves an apology message in the thread.
        """
        content = text.strip()
        state = self._store.get()
        if not content or state.timeline is None or state.mode is Mode.UNINITIALIZED:
            return
        if self._switching_to_remote and state.mode is Mode.LOCAL:
            logger.warning("Message ignored while the timeline moves to the remote store")
            return
        adapter, timeline_id = self._active()

        self._store.update(is_sending=True)
        try:
            await self._append_message(adapter, timeline_id, MessageDraft(role="user", content=content))
            reply = await self._converse()

            created_ids: list[str] = []
            for proposal in reply.proposed_events:
                if not proposal.title.strip():
                    continue
                event = await self._insert_event(
                    adapter, timeline_id, proposal.model_copy(update={"source": "chat"})
                )
                created_ids.append(event.id)

            await self._append_message(
                adapter,
                timeline_id,
                MessageDraft(role="assistant", content=reply.reply, created_event_ids=created_ids),
            )
        except Exception as exc:  # every chat failure becomes the apology turn
            logger.error("Chat round trip failed: %s", exc)
            await self._append_fallback(adapter, timeline_id)
        finally:
            self._store.update(is_sending=False)

    async def _converse(self) -> AssistantReply:
        current = self._store.get()
        history = [m.as_turn() for m in current.messages]
        result = await self._assistant.converse(history, build_event_context(current.events))
        if result.is_err():
            error = result.unwrap_err()
            raise error if isinstance(error, AssistantError) else AssistantError(str(error))
        return result.unwrap()

    async def _append_message(
        self, adapter: StoreAdapter, timeline_id: str, draft: MessageDraft
    ) -> ChatMessage:
        message = (await adapter.insert_message(timeline_id, draft)).raise_if_err()
        self._install_message(timeline_id, message)
        return message

    async def _append_fallback(self, adapter: StoreAdapter, timeline_id: str) -> None:
        draft = MessageDraft(role="assistant", content=APOLOGY_MESSAGE)
        try:
            stored = await adapter.insert_message(timeline_id, draft)
        except Exception:
            logger.exception("Persisting the fallback reply raised")
            stored = None
        if stored is not None and stored.is_ok():
            message = stored.unwrap()
        else:
            if stored is not None:
                logger.error("Fallback reply not persisted: %s", stored.unwrap_err())
            message = ChatMessage(
                id=new_id(), timeline_id=timeline_id, role="assistant", content=APOLOGY_MESSAGE
            )
        self._install_message(timeline_id, message)

    def _install_message(self, timeline_id: str, message: ChatMessage) -> None:
        current = self._store.get()
        if current.timeline_id == timeline_id:
            self._store.update(messages=[*current.messages, message])

    async def clear_messages(self) -> None:
        """Bulk-delete the active timeline's chat history."""
        adapter, timeline_id = self._active()
        (await adapter.delete_all_messages(timeline_id)).raise_if_err()
        if self._store.get().timeline_id == timeline_id:
            self._store.update(messages=[])

    # ------------------------------------------------------------------ #
    # Timeline & onboarding
    # ------------------------------------------------------------------ #
    async def rename_timeline(self, name: str) -> Timeline:
        cleaned = name.strip()
        if not cleaned:
            raise ValidationError("Timeline name is required")
        adapter, timeline_id = self._active()
        timeline = self._store.get().timeline
        assert timeline is not None
        renamed = (await adapter.rename_timeline(timeline, cleaned)).raise_if_err()
        if self._store.get().timeline_id == timeline_id:
            self._store.update(timeline=renamed)
        return renamed

    async def complete_onboarding(
        self,
        birthplace: str | None,
        birthdate: date | str | None,
        name: str | None = None,
    ) -> TimelineEvent | None:
        """Record the birth event (when both place and date are given) and mark onboarding done."""
        event: TimelineEvent | None = None
        place = (birthplace or "").strip()
        if place and birthdate and self._store.get().timeline is not None:
            event = await self.add_event(
                {
                    "title": f"Born in {place}",
                    "description": f"{name}'s story begins" if name else "The beginning",
                    "start_date": birthdate,
                    "date_precision": "day",
                    "category": "birth",
                    "tags": ["origin", "beginning"],
                    "source": "manual",
                    "sort_order": 0,
                }
            )

        if self._preferences is not None:
            prefs = self._preferences.load()
            prefs.has_completed_onboarding = True
            self._preferences.save(prefs)
        self._store.update(has_completed_onboarding=True)
        return event

    # ------------------------------------------------------------------ #
    # UI state
    # ------------------------------------------------------------------ #
    def select_event(self, event_id: str | None) -> None:
        self._store.update(selected_event_id=event_id)

    def clear_newly_added(self) -> None:
        self._store.update(newly_added_event_id=None)

    def toggle_chat(self) -> None:
        self._store.update(is_chat_open=not self._store.get().is_chat_open)

    def set_zoom(self, level: float) -> float:
        """Set the timeline zoom, clamped to 50%–200%."""
        clamped = min(MAX_ZOOM, max(MIN_ZOOM, float(level)))
        self._store.update(zoom=clamped)
        return clamped

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _active(self) -> tuple[StoreAdapter, str]:
        state = self._store.get()
        if state.timeline is None or state.mode is Mode.UNINITIALIZED:
            raise ValidationError("No timeline is active")
        if state.mode is Mode.REMOTE:
            return self._require_remote(), state.timeline.id
        if self._switching_to_remote:
            # snapshot is mid-migration and gets cleared afterwards
            raise ValidationError("Timeline is moving to your account; try again when it has loaded")
        return self._local, state.timeline.id


def _coerce_draft(draft: EventDraft | Mapping[str, Any]) -> EventDraft:
    if isinstance(draft, EventDraft) and type(draft) is EventDraft:
        return draft
    try:
        if isinstance(draft, EventDraft):
            return EventDraft.model_validate(draft.model_dump(include=set(EventDraft.model_fields)))
        return EventDraft.model_validate(dict(draft))
    except SchemaError as exc:
        raise ValidationError(f"Invalid event: {exc}") from exc


def _coerce_patch(patch: EventPatch | Mapping[str, Any]) -> EventPatch:
    if isinstance(patch, EventPatch):
        return patch
    try:
        return EventPatch.model_validate(dict(patch))
    except SchemaError as exc:
        raise ValidationError(f"Invalid event update: {exc}") from exc


__all__ = ["TimelineEngine", "MigrationReport", "MIN_ZOOM", "MAX_ZOOM"]
