"""Deterministic ordering of timeline events."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from typing import Protocol, TypeVar


class _Dated(Protocol):
    @property
    def start_date(self) -> date | None: ...

    @property
    def sort_order(self) -> int: ...


D = TypeVar("D", bound=_Dated)


def sort_events_by_date(events: Iterable[D], ascending: bool = True) -> list[D]:
    """Return events ordered by ``start_date`` with undated events last.

    The sort is stable: dated events that share a day are ordered by
    ``sort_order`` and then by their position in ``events``; undated events
    keep their relative input order. ``ascending=False`` reverses the dated
    block only.

    Note that the same-day tie-break is not pure insertion order: an event
    with a lower ``sort_order`` moves ahead of one inserted before it. Only
    events with equal ``sort_order`` (the default ``0``) fall back to input
    order. ``sort_order`` is never consulted for undated events.
    """
    dated: list[D] = []
    undated: list[D] = []
    for event in events:
        (dated if event.start_date is not None else undated).append(event)

    if ascending:
        dated.sort(key=lambda e: (e.start_date, e.sort_order))
    else:
        # Two stable passes keep ties in input order when descending.
        dated.sort(key=lambda e: e.sort_order)
        dated.sort(key=lambda e: e.start_date, reverse=True)  # type: ignore[arg-type,return-value]
    return dated + undated


__all__ = ["sort_events_by_date"]
