"""Core building blocks shared by the stores, the assistant and the engine.

Typical imports:
    from onceline.core.settings import settings, get_logger
    from onceline.core.result import Result, ok, err
    from onceline.core.errors import StorageError
"""

from __future__ import annotations

__all__ = ["__doc__"]
