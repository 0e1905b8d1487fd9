"""
Observable, revisioned view state for one active timeline.

This module is the engine's single source of truth for what the view layer
renders. It provides:

- :class:`TimelineState`: an immutable value holding the timeline, its
  ordered events and messages, and the UI flags (loading, sending, selection).
- :class:`StateStore`: holds the current ``TimelineState``, replaces it on
  every ``update(**changes)``, bumps a revision counter and notifies
  subscribers.

Design Notes
------------
- **Replace, never mutate**: each update produces a new ``TimelineState``;
  lists inside it are fresh copies, so a state captured before an ``await``
  is never changed under the caller's feet.
- **Read after await**: engine operations call :meth:`StateStore.get` again
  after every suspension point and derive their update from that, so
  interleaved operations never overwrite each other's deltas.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from onceline.core.contracts import ChatMessage, Timeline, TimelineEvent
from onceline.core.settings import get_logger

logger = get_logger(__name__)


class Mode(str, Enum):
    """Which backend currently backs the active timeline."""

    UNINITIALIZED = "uninitialized"
    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True, slots=True)
class TimelineState:
    """Everything the view layer observes.

    Attributes
    ----------
    timeline : Timeline | None
        The active timeline, ``None`` before initialisation or after a failed load.
    events : tuple[TimelineEvent, ...]
        Events in date order (undated last).
    messages : tuple[ChatMessage, ...]
        Conversation turns in creation order; append-only.
    mode : Mode
        ``LOCAL`` or ``REMOTE`` once initialised.
    is_loading / is_sending : bool
        Loading flag (true until the first successful init) and the chat
        "sending" bracket the view uses to disable input.
    load_error : str | None
        Message of the last failed remote initialisation.
    selected_event_id / newly_added_event_id : str | None
        Selection and "scroll to this" hints.
    is_chat_open, zoom, has_completed_onboarding
        Remaining UI preferences.
    revision : int
        Monotonic counter, bumped on every update.
    """

    timeline: Timeline | None = None
    events: tuple[TimelineEvent, ...] = ()
    messages: tuple[ChatMessage, ...] = ()
    mode: Mode = Mode.UNINITIALIZED
    is_loading: bool = True
    is_sending: bool = False
    load_error: str | None = None
    selected_event_id: str | None = None
    newly_added_event_id: str | None = None
    is_chat_open: bool = False
    zoom: float = 1.0
    has_completed_onboarding: bool = False
    revision: int = 0

    @property
    def timeline_id(self) -> str | None:
        return self.timeline.id if self.timeline is not None else None

    def find_event(self, event_id: str) -> TimelineEvent | None:
        return next((e for e in self.events if e.id == event_id), None)


Listener = Callable[[TimelineState], None]


@dataclass(slots=True)
class StateStore:
    """Holds the current :class:`TimelineState` and notifies subscribers on change."""

    _state: TimelineState = field(default_factory=TimelineState)
    _listeners: list[Listener] = field(default_factory=list)

    def get(self) -> TimelineState:
        """Return the current state (an immutable value)."""
        return self._state

    def update(self, **changes: Any) -> TimelineState:
        """Replace the state with ``changes`` applied and bump the revision.

        List values for ``events`` / ``messages`` are frozen into tuples.
        """
        for key in ("events", "messages"):
            if key in changes:
                changes[key] = tuple(changes[key])
        self._state = replace(self._state, revision=self._state.revision + 1, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:  # a broken view callback must not break the engine
                logger.exception("State listener %r failed", listener)
        return self._state

    def reset(self, **initial: Any) -> TimelineState:
        """Start over from a default state, keeping the revision monotonic."""
        fresh = TimelineState(revision=self._state.revision)
        self._state = fresh
        return self.update(**initial)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; the returned callable unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe


__all__ = ["Mode", "TimelineState", "StateStore", "Listener"]
