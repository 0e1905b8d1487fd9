# -----------------------------------------------------------------------------
# A small, synchronous client for OpenAI-compatible Chat Completions.
#
#   - reads the API key / base URL from settings (or explicit arguments)
#   - resolves logical aliases → concrete model IDs through the registry
#   - exposes a single `generate()` method returning the completion text,
#     optionally constrained to a JSON object (`response_format`)
#
# The implementation uses only the Python standard library (`urllib.request`).
# Unit tests *mock* the internal `_post()` method so that no real HTTP calls
# are made. Async callers run `generate()` in a worker thread.
# -----------------------------------------------------------------------------
from __future__ import annotations

import http.client
import json
import urllib.error
import urllib.request
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal

from onceline.core.settings import Settings, load_settings

from .models import DEFAULT_ALIAS, ModelConfig, get_model

ResponseFormat = Literal["text", "json_object"]


@dataclass(slots=True)
class LLMClient:
    """Chat Completions client with a simple `generate()` API.

    Parameters
    ----------
    api_key:
        Bearer token for the provider. May be empty at construction; a
        missing key is reported when :meth:`generate` is called.
    base_url:
        Default root URL of the OpenAI-compatible endpoint.
    default_model_alias:
        Alias looked up in the registry when callers do not pass ``model``.
    timeout_seconds:
        Network timeout for the underlying HTTP requests in seconds.
    """

    api_key: str
    base_url: str
    default_model_alias: str = DEFAULT_ALIAS
    timeout_seconds: float = 30.0

    # --------------------------------------------------------------------- #
    # Constructors
    # --------------------------------------------------------------------- #
    @classmethod
    def from_settings(cls, config: Settings | None = None) -> LLMClient:
        """Construct a client from ``OPENAI_API_KEY`` / ``OPENAI_BASE_URL`` settings."""
        config = config or load_settings()
        return cls(
            api_key=config.openai_api_key or "",
            base_url=config.openai_base_url,
            default_model_alias=config.assistant_model,
            timeout_seconds=config.http_timeout,
        )

    # --------------------------------------------------------------------- #
    # Public API
    # --------------------------------------------------------------------- #
    def generate(
        self,
        messages: Sequence[Mapping[str, str]],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        response_format: ResponseFormat = "text",
    ) -> str:
        """Generate a single completion from the given chat messages.

        Parameters
        ----------
        messages:
            Chat-style messages, each with ``{"role": ..., "content": ...}``.
        model:
            Optional alias or concrete model ID; defaults to
            :attr:`default_model_alias`.
        temperature, max_tokens:
            Optional overrides of the registry defaults.
        response_format:
            ``"json_object"`` asks the provider to return a single JSON object.

        Returns
        -------
        str
            The text content of the first choice.

        Raises
        ------
        RuntimeError
            If the API key is missing, the HTTP request fails, or the response
            payload has no usable content.
        """
        config: ModelConfig = get_model(model or self.default_model_alias)

        if not self.api_key:
            raise RuntimeError("Missing OPENAI_API_KEY; cannot call the assistant model.")

        base_url = (config.base_url or self.base_url).rstrip("/")
        payload: MutableMapping[str, Any] = {
            "model": config.name,
            "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
            "temperature": float(temperature if temperature is not None else config.temperature),
            "max_tokens": int(max_tokens if max_tokens is not None else config.max_tokens),
        }
        if response_format == "json_object":
            payload["response_format"] = {"type": "json_object"}

        headers: dict[str, str] = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

        response = self._post(url=base_url + "/chat/completions", headers=headers, payload=payload)
        return self._extract_content(response)

    # --------------------------------------------------------------------- #
    # Internal helpers (test seams)
    # --------------------------------------------------------------------- #
    def _post(
        self,
        *,
        url: str,
        headers: Mapping[str, str],
        payload: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Perform an HTTP POST request and decode the JSON response.

        This is the seam unit tests patch to avoid network I/O.

        Raises
        ------
        RuntimeError
            If the HTTP request fails for any reason, or if the response body
            cannot be decoded as JSON.
        """
        body = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(
            url=url,
            data=body,
            headers=dict(headers),
            method="POST",
        )

        try:
            with urllib.request.urlopen(request, timeout=self.timeout_seconds) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="ignore")
            raise RuntimeError(f"LLM HTTP error {exc.code}: {exc.reason}; body={detail!r}") from exc
        except urllib.error.URLError as exc:
            raise RuntimeError(f"LLM network error: {exc}") from exc
        except TimeoutError as exc:
            raise RuntimeError("LLM request timed out") from exc
        except (http.client.HTTPException, OSError) as exc:
            raise RuntimeError(f"LLM response could not be read: {exc}") from exc

        try:
            decoded: dict[str, Any] = json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise RuntimeError("Failed to decode LLM response as JSON") from exc

        return decoded

    @staticmethod
    def _extract_content(response: Mapping[str, Any]) -> str:
        """Extract ``choices[0].message.content`` from a Chat Completions payload."""
        choices = response.get("choices")
        if not isinstance(choices, list) or not choices:
            raise RuntimeError("LLM response has no choices; cannot extract content.")

        message = choices[0].get("message") if isinstance(choices[0], Mapping) else None
        if not isinstance(message, Mapping):
            raise RuntimeError("LLM response choice[0].message is missing or invalid.")

        content = message.get("content")
        if not isinstance(content, str) or not content:
            raise RuntimeError("LLM response choice[0].message.content is empty.")

        return content


__all__ = ["LLMClient", "ResponseFormat"]
