"""ChatMessage: one append-only turn of the narration conversation."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .record import Record

Role = Literal["user", "assistant"]


class MessageDraft(BaseModel):
    """A message before the store assigns it an id.

    ``created_at`` is normally left empty and stamped on insert; migration
    passes the original timestamp so history keeps its order.
    """

    model_config = ConfigDict(extra="ignore")

    role: Role
    content: str
    created_event_ids: list[str] = Field(default_factory=list)
    created_at: datetime | None = None

    @field_validator("created_event_ids", mode="before")
    @classmethod
    def _ids(cls, v: Any) -> list[str]:
        return [] if v is None else [str(x) for x in v]


class ChatMessage(Record):
    """A persisted conversation turn."""

    timeline_id: str
    role: Role
    content: str
    created_event_ids: list[str] = Field(default_factory=list)

    @field_validator("created_event_ids", mode="before")
    @classmethod
    def _ids(cls, v: Any) -> list[str]:
        return [] if v is None else [str(x) for x in v]

    def as_turn(self) -> dict[str, str]:
        """Return the ``{role, content}`` pair sent to the assistant."""
        return {"role": self.role, "content": self.content}


__all__ = ["Role", "MessageDraft", "ChatMessage"]
