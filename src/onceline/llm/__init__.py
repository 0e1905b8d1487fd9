from __future__ import annotations

from .assistant import (
    APOLOGY_MESSAGE,
    Assistant,
    AssistantClient,
    AssistantReply,
    build_event_context,
    parse_assistant_payload,
)
from .client import LLMClient
from .models import (
    DEFAULT_ALIAS,
    MODEL_REGISTRY,
    ModelConfig,
    all_models,
    get_model,
)

__all__ = [
    "APOLOGY_MESSAGE",
    "Assistant",
    "AssistantClient",
    "AssistantReply",
    "build_event_context",
    "parse_assistant_payload",
    "ModelConfig",
    "MODEL_REGISTRY",
    "DEFAULT_ALIAS",
    "get_model",
    "all_models",
    "LLMClient",
]
