"""Pydantic contracts for timelines, events, chat messages and the offline snapshot."""

from __future__ import annotations

from .event import EVENT_CATEGORIES, EventDraft, EventPatch, EventSource, ImageMetadata, TimelineEvent
from .message import ChatMessage, MessageDraft, Role
from .record import Record, new_id, utcnow
from .snapshot import AnonymousSnapshot
from .timeline import ANONYMOUS_TIMELINE_ID, Identity, Timeline

__all__ = [
    "ANONYMOUS_TIMELINE_ID",
    "EVENT_CATEGORIES",
    "AnonymousSnapshot",
    "ChatMessage",
    "EventDraft",
    "EventPatch",
    "EventSource",
    "Identity",
    "ImageMetadata",
    "MessageDraft",
    "Record",
    "Role",
    "Timeline",
    "TimelineEvent",
    "new_id",
    "utcnow",
]
