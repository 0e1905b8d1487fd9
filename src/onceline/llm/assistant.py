"""
Assistant client: turn a conversation into a reply plus proposed timeline events.

Responsibilities
----------------
- Build the outbound payload: a fixed system instruction describing the
  extraction task, suffixed with a compact summary of the events already on
  the timeline, followed by the conversation's ``{role, content}`` turns.
- Ask the model for a single JSON object ``{"message": ..., "events": [...]}``.
- Parse the answer defensively into an :class:`AssistantReply`:
  * a missing ``events`` key means "no events";
  * proposals without a title are skipped;
  * loose dates ("1998", "2004-09") are normalised and their precision kept.
- Translate every transport or parsing failure into ``Err(AssistantError)``.

The client holds no conversation state and persists nothing; the engine owns
both.
"""

from __future__ import annotations

import asyncio
import json
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Final, Protocol

from pydantic import ValidationError as SchemaError

from onceline.core.contracts import EVENT_CATEGORIES, EventDraft
from onceline.core.dates import parse_loose_date
from onceline.core.errors import AssistantError
from onceline.core.result import Result, err, ok
from onceline.core.settings import Settings, get_logger

from .client import LLMClient

logger = get_logger(__name__)

#: Shown in the chat thread whenever a round trip fails.
APOLOGY_MESSAGE: Final[str] = "Sorry, something went wrong. Please try again."

_EMPTY_TIMELINE_CONTEXT: Final[str] = "\n\nThis is a new timeline with no events yet."
_PRECISIONS: Final[frozenset[str]] = frozenset({"year", "month", "day"})
_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

_CATEGORY_LIST: Final[str] = ", ".join(EVENT_CATEGORIES)

SYSTEM_PROMPT: Final[str] = f"""You are a warm, curious companion helping someone
write down the story of their life as a timeline.

Your job:
1. Ask thoughtful, one-at-a-time questions that help them remember important
   moments: where they lived, studied, worked, travelled, who mattered to them.
2. Extract timeline events from what they tell you.
3. Stay conversational and kind; this is their life story.

Whenever the user mentions dates, years, ages or periods ("when I was 5",
"in 2010", "the summer after college"), capture them as precisely as the
text allows.

Event categories: {_CATEGORY_LIST}.

Output format (VERY IMPORTANT):
Return only a single JSON object with this structure:

{{
  "message": "Your conversational reply to the user",
  "events": [
    {{
      "title": "Short event title",
      "description": "Optional longer description",
      "start_date": "YYYY-MM-DD, YYYY-MM, YYYY or null",
      "end_date": "same formats, or null for a single moment / ongoing",
      "date_precision": "year | month | day",
      "age_start": number or null,
      "age_end": number or null,
      "category": "one of the categories above",
      "tags": ["optional", "keywords"]
    }}
  ]
}}

Rules:
- If nothing in the latest message describes an event, return "events": [].
- Do not repeat events that are already on the timeline.
- Do not wrap the JSON in backticks or Markdown.

If the conversation is just starting, greet them and ask where and when they
were born so the timeline has a beginning."""


@dataclass(frozen=True, slots=True)
class AssistantReply:
    """Parsed assistant turn: the reply text and any proposed events."""

    reply: str
    proposed_events: list[EventDraft] = field(default_factory=list)


class Assistant(Protocol):
    """What the engine needs from an assistant implementation."""

    async def converse(
        self, history: Sequence[Mapping[str, str]], event_context: str
    ) -> Result[AssistantReply, AssistantError]: ...


class _Summarisable(Protocol):
    @property
    def title(self) -> str: ...

    @property
    def start_date(self) -> date | None: ...

    @property
    def category(self) -> str | None: ...


def build_event_context(events: Sequence[_Summarisable]) -> str:
    """Summarise known events as the system prompt suffix.

    Each event becomes ``- {title} ({start_date or 'date unknown'}) [{category}]``.
    """
    if not events:
        return _EMPTY_TIMELINE_CONTEXT
    lines = [
        f"- {e.title} ({e.start_date.isoformat() if e.start_date else 'date unknown'}) "
        f"[{e.category or 'uncategorized'}]"
        for e in events
    ]
    return f"\n\nTimeline so far ({len(events)} events):\n" + "\n".join(lines)


# --------------------------------------------------------------------------- #
# Parsing helpers
# --------------------------------------------------------------------------- #
def _parse_int(raw: Any) -> int | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _parse_tags(raw: Any) -> list[str]:
    if not isinstance(raw, Sequence) or isinstance(raw, str | bytes):
        return []
    return [str(t).strip() for t in raw if str(t).strip()]


def _parse_text(raw: Any) -> str | None:
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


def _draft_from_json(node: Any) -> EventDraft | None:
    """Convert one proposed event into an :class:`EventDraft`, or ``None`` to skip it."""
    if not isinstance(node, Mapping):
        return None

    title = _parse_text(node.get("title"))
    if not title:
        return None

    start, start_precision = parse_loose_date(node.get("start_date"))
    end, _ = parse_loose_date(node.get("end_date"))

    precision = str(node.get("date_precision") or "").strip().lower()
    if precision not in _PRECISIONS:
        precision = start_precision or "day"

    category = _parse_text(node.get("category"))

    try:
        return EventDraft(
            title=title,
            description=_parse_text(node.get("description")),
            start_date=start,
            end_date=end,
            date_precision=precision,  # type: ignore[arg-type]
            age_start=_parse_int(node.get("age_start")),
            age_end=_parse_int(node.get("age_end")),
            category=category.lower() if category else None,
            tags=_parse_tags(node.get("tags")),
            source="chat",
        )
    except SchemaError as exc:
        logger.warning("Skipping unusable proposed event %r: %s", title, exc)
        return None


def parse_assistant_payload(raw: str) -> Result[AssistantReply, AssistantError]:
    """Parse the model's JSON text into an :class:`AssistantReply`."""
    text = raw.strip()
    if match := _FENCE_RE.match(text):
        text = match.group(1)

    try:
        payload: Any = json.loads(text)
    except json.JSONDecodeError as exc:
        return err(AssistantError(f"assistant returned invalid JSON: {exc}"))

    if not isinstance(payload, Mapping):
        return err(AssistantError("assistant JSON root must be an object"))

    message = payload.get("message")
    if not isinstance(message, str) or not message.strip():
        return err(AssistantError("assistant JSON has no 'message'"))

    events_raw = payload.get("events") or []
    if not isinstance(events_raw, list):
        events_raw = []

    drafts = [d for d in (_draft_from_json(node) for node in events_raw) if d is not None]
    return ok(AssistantReply(reply=message.strip(), proposed_events=drafts))


# --------------------------------------------------------------------------- #
# Client
# --------------------------------------------------------------------------- #
class AssistantClient:
    """Stateless bridge between the engine and the text-generation service."""

    def __init__(self, llm: LLMClient, *, model: str | None = None) -> None:
        self.llm = llm
        self.model = model

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> AssistantClient:
        return cls(LLMClient.from_settings(config))

    def build_messages(
        self, history: Sequence[Mapping[str, str]], event_context: str
    ) -> list[dict[str, str]]:
        """Return ``[system, *history]`` with only role/content kept."""
        return [
            {"role": "system", "content": SYSTEM_PROMPT + event_context},
            *({"role": str(m["role"]), "content": str(m["content"])} for m in history),
        ]

    async def converse(
        self, history: Sequence[Mapping[str, str]], event_context: str
    ) -> Result[AssistantReply, AssistantError]:
        """Run one round trip; never raises for transport or parsing problems."""
        messages = self.build_messages(history, event_context)
        try:
            raw = await asyncio.to_thread(
                self.llm.generate,
                messages,
                model=self.model,
                response_format="json_object",
            )
        except RuntimeError as exc:
            logger.error("Assistant round trip failed: %s", exc)
            return err(AssistantError(str(exc)))

        parsed = parse_assistant_payload(raw)
        if parsed.is_err():
            logger.error("Assistant reply unusable: %s", parsed.unwrap_err())
        return parsed


__all__ = [
    "APOLOGY_MESSAGE",
    "SYSTEM_PROMPT",
    "Assistant",
    "AssistantClient",
    "AssistantReply",
    "build_event_context",
    "parse_assistant_payload",
]
