# -----------------------------------------------------------------------------
# A tiny, in-process model registry used by the LLM client.
#
# The registry gives us a single place to:
#   - declare human-friendly aliases ("assistant", "fast")
#   - pin them to concrete provider model IDs
#   - keep default sampling parameters (temperature, max_tokens)
#
# The assistant always asks for the "assistant" alias; swapping the model is a
# registry (or ONCELINE_ASSISTANT_MODEL) change, never a code change.
# -----------------------------------------------------------------------------
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ModelConfig:
    """Configuration for a single chat model.

    Parameters
    ----------
    name:
        Provider-specific model identifier, e.g. ``"gpt-4o"``.
    base_url:
        Root of an OpenAI-compatible API. ``None`` means "use the client's
        configured base URL" (``OPENAI_BASE_URL``).
    max_tokens:
        Soft default for the maximum number of tokens to generate.
    temperature:
        Default sampling temperature.
    """

    name: str
    base_url: str | None = None
    max_tokens: int = 2048
    temperature: float = 0.7


#: Logical aliases → model configs.
MODEL_REGISTRY: dict[str, ModelConfig] = {
    # Conversational extraction of life events; warm tone, JSON output.
    "assistant": ModelConfig(name="gpt-4o", max_tokens=2048, temperature=0.7),
    # Cheap model for smoke runs and local experimentation.
    "fast": ModelConfig(name="gpt-4o-mini", max_tokens=1024, temperature=0.5),
}

#: Default logical alias used when callers do not explicitly choose a model.
DEFAULT_ALIAS: str = "assistant"


def get_model(alias_or_name: str) -> ModelConfig:
    """Return the registry entry for an alias, or an ad-hoc config for a raw model id."""
    if alias_or_name in MODEL_REGISTRY:
        return MODEL_REGISTRY[alias_or_name]
    return ModelConfig(name=alias_or_name)


def all_models() -> Mapping[str, ModelConfig]:
    """Return a shallow copy of the registry (safe for diagnostics)."""
    return dict(MODEL_REGISTRY)


__all__ = ["ModelConfig", "MODEL_REGISTRY", "DEFAULT_ALIAS", "get_model", "all_models"]
