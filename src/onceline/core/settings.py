"""Centralized application configuration using Pydantic Settings (v2).

This module exposes a single, cached `settings` instance that reads from:
- Real environment variables (highest precedence)
- `.env` files at the repository root: .env, .env.local, .env.dev/.env.test/.env.prod

Storage locations, the remote row service and the assistant model are all
configured here so that the CLI, the API and tests build engines the same way.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

EnvName = Literal["dev", "test", "prod"]
LogLevelName = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

_ROOT_LOGGER = "onceline"


class Settings(BaseSettings):
    """Typed application configuration loaded from env and `.env` files.

    Attributes
    ----------
    environment : EnvName
        Runtime environment flag; maps from `ONCELINE_ENV`.
    log_level : LogLevelName
        Global log level string; maps from `LOG_LEVEL`.
    openai_api_key : Optional[str]
        Key for the assistant's text-generation service. Maps from `OPENAI_API_KEY`.
    openai_base_url : str
        OpenAI-compatible endpoint root. Maps from `OPENAI_BASE_URL`.
    assistant_model : str
        Registry alias (or concrete model id) used by the assistant.
    supabase_url : Optional[str]
        Root URL of the remote row service; remote mode is unavailable without it.
    supabase_anon_key : Optional[str]
        Public API key sent with every remote request.
    data_dir : Path
        Directory holding the offline snapshot and UI preferences.
    default_timeline_name : str
        Display name given to newly created timelines.
    http_timeout : float
        Network timeout in seconds for both the assistant and the remote store.
    """

    environment: EnvName = Field(default="dev", alias="ONCELINE_ENV")
    log_level: LogLevelName = Field(default="INFO", alias="LOG_LEVEL")
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_base_url: str = Field(default="https://api.openai.com/v1", alias="OPENAI_BASE_URL")
    assistant_model: str = Field(default="assistant", alias="ONCELINE_ASSISTANT_MODEL")
    supabase_url: str | None = Field(default=None, alias="SUPABASE_URL")
    supabase_anon_key: str | None = Field(default=None, alias="SUPABASE_ANON_KEY")
    data_dir: Path = Field(default=Path(".onceline"), alias="ONCELINE_DATA_DIR")
    default_timeline_name: str = Field(default="My Life", alias="ONCELINE_TIMELINE_NAME")
    http_timeout: float = Field(default=30.0, alias="ONCELINE_HTTP_TIMEOUT")

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local", ".env.dev", ".env.test", ".env.prod"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def is_dev(self) -> bool:
        """Return True if running in the development environment."""
        return self.environment == "dev"

    @property
    def is_test(self) -> bool:
        """Return True if running in the test environment."""
        return self.environment == "test"

    @property
    def is_prod(self) -> bool:
        """Return True if running in the production environment."""
        return self.environment == "prod"

    @property
    def remote_configured(self) -> bool:
        """Return True when both the remote URL and its API key are present."""
        return bool(self.supabase_url and self.supabase_anon_key)

    def log_level_numeric(self) -> int:
        """Return the numeric logging level corresponding to `self.log_level`."""
        return getattr(logging, self.log_level, logging.INFO)


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Create and cache a `Settings` instance.

    We keep this behind an LRU cache so tests can force a rebuild via
    `load_settings.cache_clear()` after mutating `os.environ`.
    """
    os.environ.setdefault("ONCELINE_ENV", "dev")
    return Settings()


# Export a ready-to-use singleton (import-time read of env / .env files).
settings: Settings = load_settings()


def get_logger(name: str = _ROOT_LOGGER) -> logging.Logger:
    """Return a logger under the `onceline` hierarchy configured to the current level.

    The handler is attached once to the `onceline` root logger; module loggers
    such as `onceline.store.local` propagate to it.
    """
    current = load_settings()
    root = logging.getLogger(_ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        )
        root.addHandler(handler)
        root.propagate = False
    root.setLevel(current.log_level_numeric())

    if name == _ROOT_LOGGER or name.startswith(_ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT_LOGGER}.{name}")
