"""Error kinds raised by the engine and carried inside ``Err`` results.

Propagation policy
------------------
- ``ValidationError`` / ``NotFoundError``: reported to the caller, no state change.
- ``StorageError``: reported for initialisation and explicit CRUD; logged and
  swallowed for offline snapshot writes and for individual migration items.
- ``AssistantError``: never leaves ``send_message``; it becomes a fallback
  assistant message in the chat thread.
"""

from __future__ import annotations


class OncelineError(Exception):
    """Base class for every error the package raises on purpose."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(OncelineError):
    """Input rejected before any storage call (e.g. an empty title)."""


class NotFoundError(OncelineError):
    """An operation referenced an id that is not part of the active timeline."""

    def __init__(self, message: str, *, entity_id: str | None = None) -> None:
        super().__init__(message)
        self.entity_id = entity_id


class StorageError(OncelineError):
    """A store adapter could not complete an I/O operation.

    ``status_code`` is set when the failure came from an HTTP response.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AssistantError(OncelineError):
    """The text-generation round trip failed or returned an unusable payload."""


__all__ = [
    "OncelineError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "AssistantError",
]
