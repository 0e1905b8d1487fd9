"""Base record contract shared by rows stored locally or remotely.

Every persisted entity (timeline, event, chat message) has an opaque ``id``
and a UTC ``created_at``. Rows arrive from two places, the offline snapshot
JSON and the remote row service, and both may carry columns this package
does not model; those are ignored rather than rejected.

Notes
-----
- Pydantic v2 is used throughout; ``model_validate`` is the adapter boundary.
- ``new_id()`` / ``utcnow()`` are the only sources of ids and timestamps for
  locally synthesised rows so tests can reason about them.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


def new_id() -> str:
    """Return a fresh opaque identifier (UUID4 string)."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


class Record(BaseModel):
    """Envelope embedded by all persisted contracts."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(description="Opaque identifier assigned by the owning store")
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("id")
    @classmethod
    def _id_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("id must not be blank")
        return v


__all__ = ["Record", "new_id", "utcnow"]
