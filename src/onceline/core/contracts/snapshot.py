"""AnonymousSnapshot: the offline bag of events and messages."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .event import TimelineEvent
from .message import ChatMessage


class AnonymousSnapshot(BaseModel):
    """Serialized form ``{"events": [...], "messages": [...]}`` kept in the local slot."""

    model_config = ConfigDict(extra="ignore")

    events: list[TimelineEvent] = Field(default_factory=list)
    messages: list[ChatMessage] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.events and not self.messages

    def to_json(self) -> str:
        return self.model_dump_json()


__all__ = ["AnonymousSnapshot"]
