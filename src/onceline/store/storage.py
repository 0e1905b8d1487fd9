"""Durable string-keyed slots on disk.

:class:`FileStorage` plays the role a browser's ``localStorage`` plays for a
web client: a flat namespace of string values, one file per key under a
base directory.

- Default directory: ``settings.data_dir`` (``ONCELINE_DATA_DIR``, else ``.onceline/``)
- Filename pattern:  ``<key>.json``
- Writes go to a temporary sibling first and are moved into place with
  ``os.replace`` so a crash never leaves a half-written slot.

Errors are *not* handled here: callers decide whether a failed read or write
matters (the snapshot and preference stores log and continue).
"""

from __future__ import annotations

import os
import re
from pathlib import Path

from onceline.core.settings import load_settings

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class FileStorage:
    """Persist string values under fixed keys in a directory."""

    def __init__(self, base_dir: Path | None = None) -> None:
        self.base_dir: Path = base_dir if base_dir is not None else load_settings().data_dir

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"unsupported storage key: {key!r}")
        return self.base_dir / f"{key}.json"

    def get_item(self, key: str) -> str | None:
        """Return the stored string for ``key`` or ``None`` when absent."""
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        """Atomically replace the value stored under ``key``."""
        path = self._path(key)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(value, encoding="utf-8")
        os.replace(tmp, path)

    def remove_item(self, key: str) -> None:
        """Delete ``key``; a missing key is not an error."""
        self._path(key).unlink(missing_ok=True)


__all__ = ["FileStorage"]
