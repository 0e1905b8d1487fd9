"""Request/response bodies of the HTTP API."""

from __future__ import annotations

from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from onceline.core.dates import parse_loose_date


class ChatTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ContextEvent(BaseModel):
    """The slice of an existing event the assistant needs as context."""

    model_config = ConfigDict(extra="ignore")

    title: str
    start_date: date | None = None
    category: str | None = None

    @field_validator("start_date", mode="before")
    @classmethod
    def _loose_date(cls, value: Any) -> date | None:
        parsed, _ = parse_loose_date(value)
        return parsed


class ChatRequest(BaseModel):
    messages: list[ChatTurn] = Field(min_length=1)
    events: list[ContextEvent] = Field(default_factory=list)


class ChatResponse(BaseModel):
    """Assistant reply plus proposed (not yet stored) events."""

    message: str
    events: list[dict[str, Any]] = Field(default_factory=list)


__all__ = ["ChatTurn", "ContextEvent", "ChatRequest", "ChatResponse"]
