"""TimelineEvent: a single narrated life moment, plus its draft and patch shapes.

Three shapes share the same content fields:

- :class:`EventDraft`: what callers (forms, onboarding, the assistant) submit.
  Identity and timestamps are assigned by the store that persists it.
- :class:`TimelineEvent`: a materialised row belonging to one timeline.
- :class:`EventPatch`: a partial update; only explicitly set fields apply.

Dates are calendar dates. Inputs such as ``"1998"`` or ``"2004-09"`` are
accepted and normalised to the first day of the period; the caller decides the
``date_precision``.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Final, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ..dates import DatePrecision, parse_loose_date
from .record import Record, utcnow

EventSource = Literal["chat", "manual", "photo", "import"]

#: Categories the timeline renders with dedicated styling. Others are allowed.
EVENT_CATEGORIES: Final[tuple[str, ...]] = (
    "birth",
    "education",
    "residence",
    "work",
    "travel",
    "relationship",
    "milestone",
    "memory",
)


def _coerce_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    parsed, _ = parse_loose_date(value)
    if parsed is None:
        raise ValueError(f"invalid calendar date: {value!r}")
    return parsed


def _coerce_tags(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    return [str(tag).strip() for tag in value if str(tag).strip()]


class ImageMetadata(BaseModel):
    """Photo metadata attached to events created from an image."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    date_taken: str | None = Field(
        default=None, validation_alias=AliasChoices("date_taken", "dateTaken")
    )
    gps_lat: float | None = Field(default=None, validation_alias=AliasChoices("gps_lat", "gpsLat"))
    gps_lng: float | None = Field(default=None, validation_alias=AliasChoices("gps_lng", "gpsLng"))
    camera: str | None = None
    width: int | None = None
    height: int | None = None


class EventDraft(BaseModel):
    """Content of an event before a store assigns it an id."""

    model_config = ConfigDict(extra="ignore")

    title: str = ""
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    date_precision: DatePrecision = "day"
    age_start: int | None = None
    age_end: int | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    source: EventSource = "manual"
    sort_order: int = 0
    is_private: bool = False
    image_url: str | None = None
    image_metadata: ImageMetadata | None = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _dates(cls, v: Any) -> date | None:
        return _coerce_date(v)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v: Any) -> list[str]:
        return _coerce_tags(v)

    @field_validator("date_precision", mode="before")
    @classmethod
    def _precision(cls, v: Any) -> Any:
        return "day" if v is None else v

    @field_validator("sort_order", mode="before")
    @classmethod
    def _sort_order(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator("is_private", mode="before")
    @classmethod
    def _is_private(cls, v: Any) -> Any:
        return False if v is None else v

    def content(self) -> dict[str, Any]:
        """Return the draft's fields as JSON-safe values."""
        return self.model_dump(mode="json", include=set(EventDraft.model_fields))


class TimelineEvent(EventDraft, Record):
    """An event that belongs to a timeline."""

    timeline_id: str
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("title")
    @classmethod
    def _title_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("event title must not be empty")
        return v

    @property
    def is_known_category(self) -> bool:
        return self.category in EVENT_CATEGORIES


class EventPatch(BaseModel):
    """Partial update of an event's editable fields."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    date_precision: DatePrecision | None = None
    age_start: int | None = None
    age_end: int | None = None
    category: str | None = None
    tags: list[str] | None = None
    sort_order: int | None = None
    is_private: bool | None = None
    image_url: str | None = None
    image_metadata: ImageMetadata | None = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _dates(cls, v: Any) -> date | None:
        return _coerce_date(v)

    def changes(self) -> dict[str, Any]:
        """Return only the fields the caller set, as JSON-safe values."""
        return self.model_dump(mode="json", exclude_unset=True)


__all__ = [
    "EVENT_CATEGORIES",
    "EventSource",
    "ImageMetadata",
    "EventDraft",
    "TimelineEvent",
    "EventPatch",
]
