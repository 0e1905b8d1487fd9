"""Calendar helpers for timeline events.

Events carry a ``date`` plus a precision (``year``, ``month`` or ``day``). The
assistant and the CLI both accept looser inputs ("1998", "2004-09") which are
normalised here to the first day of the period with the matching precision.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Literal

DatePrecision = Literal["year", "month", "day"]

_YEAR_RE = re.compile(r"^(\d{4})$")
_MONTH_RE = re.compile(r"^(\d{4})-(\d{1,2})$")


def parse_loose_date(raw: Any) -> tuple[date | None, DatePrecision | None]:
    """Parse a year, year-month or ISO date into ``(date, precision)``.

    Integers are treated as years. Unparseable values, ``None`` and the
    literal string ``"null"`` yield ``(None, None)``.
    """
    if isinstance(raw, datetime):
        return raw.date(), "day"
    if isinstance(raw, date):
        return raw, "day"
    if isinstance(raw, bool):
        return None, None
    if isinstance(raw, int):
        return _safe_date(raw, 1, 1), "year"
    if not isinstance(raw, str):
        return None, None

    value = raw.strip()
    if not value or value.lower() == "null":
        return None, None

    if match := _YEAR_RE.match(value):
        return _safe_date(int(match.group(1)), 1, 1), "year"
    if match := _MONTH_RE.match(value):
        parsed = _safe_date(int(match.group(1)), int(match.group(2)), 1)
        return parsed, "month" if parsed else None

    try:
        return date.fromisoformat(value[:10]), "day"
    except ValueError:
        return None, None


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except (ValueError, OverflowError):
        return None


def format_event_date(value: date | None, precision: DatePrecision = "day") -> str:
    """Render an event date at its precision, e.g. ``"1998"``, ``"Sep 2004"``, ``"May 15, 2020"``."""
    if value is None:
        return "Date unknown"
    if precision == "year":
        return f"{value.year}"
    if precision == "month":
        return value.strftime("%b %Y")
    return f"{value.strftime('%b')} {value.day}, {value.year}"


def calculate_age(birth: date, at: date | None = None) -> int | None:
    """Return whole years between ``birth`` and ``at`` (today by default)."""
    at = at or date.today()
    if at < birth:
        return None
    years = at.year - birth.year
    if (at.month, at.day) < (birth.month, birth.day):
        years -= 1
    return years


__all__ = ["DatePrecision", "parse_loose_date", "format_event_date", "calculate_age"]
