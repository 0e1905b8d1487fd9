"""Timeline: the container that scopes events and chat history."""

from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field

from .record import Record, utcnow

#: Sentinel id of the offline, unauthenticated timeline.
ANONYMOUS_TIMELINE_ID = "anonymous"


class Timeline(Record):
    """One narrative container; exactly one is active at a time.

    Remote rows use ``user_id``/``name`` column names, which are accepted as
    aliases for ``owner``/``display_name``.
    """

    owner: str | None = Field(
        default=None, validation_alias=AliasChoices("owner", "user_id")
    )
    display_name: str = Field(
        default="My Life", validation_alias=AliasChoices("display_name", "name")
    )
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_anonymous(self) -> bool:
        return self.id == ANONYMOUS_TIMELINE_ID

    @classmethod
    def anonymous(cls, display_name: str = "My Life") -> Timeline:
        """Build the sentinel local timeline."""
        return cls(id=ANONYMOUS_TIMELINE_ID, owner=None, display_name=display_name)


class Identity(BaseModel):
    """An authenticated user as handed over by the (external) auth flow."""

    user_id: str
    email: str | None = None
    access_token: str | None = Field(default=None, repr=False)


__all__ = ["ANONYMOUS_TIMELINE_ID", "Timeline", "Identity"]
