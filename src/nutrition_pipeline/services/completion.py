"""Text completion interface and failure classification."""

from enum import StrEnum
from typing import Protocol

import httpx
import openai

_QUOTA_MARKERS = ("quota", "billing", "rate limit", "insufficient_quota")
_NETWORK_MARKERS = ("network", "timeout", "timed out", "connection", "econnreset")
_REFUSAL_MARKERS = ("couldn't analyze", "clearer photo", "invalid response", "refus")


class CompletionClient(Protocol):
    """Interface for an external text-completion model."""

    async def complete(  # noqa: PLR0913
        self,
        *,
        model: str,
        messages: list[dict[str, object]],
        max_tokens: int,
        temperature: float,
        timeout_seconds: float,
    ) -> str:
        """Return the model's text reply, or an empty string."""


class ModelErrorKind(StrEnum):
    """Why a model call failed; used for logging only."""

    QUOTA = "quota"
    NETWORK = "network"
    REFUSAL = "refusal"
    OTHER = "other"


def classify_model_error(exc: BaseException) -> ModelErrorKind:
    """Classify a model call failure by type, status code and message."""
    if isinstance(exc, openai.RateLimitError):
        return ModelErrorKind.QUOTA
    if isinstance(exc, openai.APIConnectionError | httpx.TransportError | TimeoutError):
        return ModelErrorKind.NETWORK
    status_code = status_code_from_exception(exc)
    if status_code in {402, 429}:
        return ModelErrorKind.QUOTA
    if status_code in {408, 502, 503, 504}:
        return ModelErrorKind.NETWORK
    message = str(exc).lower()
    if any(marker in message for marker in _QUOTA_MARKERS):
        return ModelErrorKind.QUOTA
    if any(marker in message for marker in _NETWORK_MARKERS):
        return ModelErrorKind.NETWORK
    if any(marker in message for marker in _REFUSAL_MARKERS):
        return ModelErrorKind.REFUSAL
    return ModelErrorKind.OTHER


def status_code_from_exception(exc: BaseException) -> int | None:
    """Extract an HTTP status code from an exception, if available."""
    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int):
        return status_code
    response = getattr(exc, "response", None)
    status_code = getattr(response, "status_code", None)
    if isinstance(status_code, int):
        return status_code
    return None


def clip_prompt(text: str, max_chars: int) -> str:
    """Cap prompt text so a single request stays within budget."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars]
