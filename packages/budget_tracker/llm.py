"""Anthropic Messages API access shared by the AI-backed components.

Public API:
    - :func:`resolve_api_key` / :func:`resolve_model`
    - :func:`create_client`
    - :func:`complete` (one-shot request returning text plus token usage)
    - :func:`extract_json_array`

No client is created and no environment is read at import time.
"""

from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass
from typing import Any

from anthropic import Anthropic

from .errors import InvalidAIResponseError, MissingApiKeyError
from .logging_setup import get_logger

DEFAULT_MODEL: str = "claude-sonnet-4-20250514"

_logger = get_logger("budget_tracker.llm")


def resolve_api_key(api_key: str | None = None) -> str:
    """Return ``api_key`` or ``ANTHROPIC_API_KEY``; raise when neither is set."""

    key = (api_key or os.getenv("ANTHROPIC_API_KEY") or "").strip()
    if not key:
        raise MissingApiKeyError()
    return key


def resolve_model(model: str | None = None) -> str:
    return model or os.getenv("BUDGET_TRACKER_MODEL") or DEFAULT_MODEL


def create_client(api_key: str) -> Anthropic:
    return Anthropic(api_key=api_key)


@dataclass(frozen=True, slots=True)
class Completion:
    text: str
    usage: dict[str, int] | None


def _usage_dict(usage: Any) -> dict[str, int] | None:
    if usage is None:
        return None
    out: dict[str, int] = {}
    for key in ("input_tokens", "output_tokens"):
        value = getattr(usage, key, None)
        if isinstance(value, int):
            out[key] = value
    return out or None


def _response_text(message: Any) -> str:
    content = getattr(message, "content", None) or []
    if not content:
        return ""
    return getattr(content[0], "text", None) or ""


def complete(client: Anthropic, prompt: str, *, model: str, max_tokens: int) -> Completion:
    """Send a single user message and return the first content block's text.

    SDK exceptions (auth, rate limit, network) propagate unchanged.
    """

    t0 = time.perf_counter()
    message = client.messages.create(
        model=model,
        max_tokens=max_tokens,
        messages=[{"role": "user", "content": prompt}],
    )
    completion = Completion(text=_response_text(message), usage=_usage_dict(getattr(message, "usage", None)))
    _logger.info(
        "llm:complete model=%s prompt_chars=%d response_chars=%d latency_ms=%.2f",
        model,
        len(prompt),
        len(completion.text),
        (time.perf_counter() - t0) * 1000.0,
    )
    return completion


def extract_json_array(text: str) -> list[Any]:
    """Decode the JSON array embedded in a model response.

    The array spans from the first ``[`` to the last ``]`` so that prose or
    code fences around it are ignored. Raises :class:`InvalidAIResponseError`
    when no array is present or it does not decode.
    """

    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end < start:
        raise InvalidAIResponseError("no JSON array found", text)
    try:
        decoded = json.loads(text[start : end + 1])
    except json.JSONDecodeError as e:
        raise InvalidAIResponseError(f"JSON decode failed ({e.msg})", text) from e
    if not isinstance(decoded, list):
        raise InvalidAIResponseError("expected a JSON array", text)
    return decoded


__all__ = [
    "DEFAULT_MODEL",
    "Completion",
    "complete",
    "create_client",
    "extract_json_array",
    "resolve_api_key",
    "resolve_model",
]
