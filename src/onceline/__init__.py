"""Onceline: narrate a life story and keep its timeline in sync.

The package is organised around the :class:`~onceline.engine.reconciler.TimelineEngine`,
which owns the in-memory view of one timeline and reconciles it with either the
offline snapshot store or the remote row store.
"""

from __future__ import annotations

__all__ = ["__version__"]
__version__ = "0.3.0"
