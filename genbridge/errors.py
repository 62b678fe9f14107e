"""Error taxonomy shared by every provider adapter.

Each error carries a ``category`` for logs and metrics, a ``retryable`` flag
and a ``user_message`` that is safe to show without the technical detail.
Adapters classify failures but never retry; see ``retry_with_backoff``.
"""

from __future__ import annotations

import json
from typing import Callable, Mapping

import httpx


class GenerationError(Exception):
    """Base class for all generation-layer failures."""

    category = "unknown"
    retryable = False
    default_user_message = "An unexpected error occurred while processing your AI request."

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    @property
    def user_message(self) -> str:
        return self.default_user_message


class ProviderNotInitializedError(GenerationError):
    category = "initialization"
    default_user_message = "AI provider is not configured. Please check your settings."

    def __init__(self, message: str = "Provider not initialized") -> None:
        super().__init__(message)


class ConfigurationError(GenerationError):
    category = "configuration"
    default_user_message = "AI configuration is invalid. Please verify your provider settings."


class NoMatchingModelError(ConfigurationError):
    """No registry model satisfies the selection criteria."""

    def __init__(self, message: str = "No models match the specified criteria") -> None:
        super().__init__(message)


class ProviderError(GenerationError):
    category = "provider"

    def __init__(self, message: str, *, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class NetworkError(GenerationError):
    category = "network"
    retryable = True
    default_user_message = "Network connection failed. Please check your internet connection."


class AuthenticationError(GenerationError):
    category = "authentication"
    default_user_message = "AI provider authentication failed. Please check your API key."


class RateLimitError(GenerationError):
    category = "rate_limit"
    retryable = True
    default_user_message = "AI provider rate limit exceeded. Please try again later."

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class InvalidRequestError(GenerationError):
    category = "validation"


class ValidationError(GenerationError):
    category = "validation"

    @property
    def user_message(self) -> str:
        return f"Validation failed: {self.message}"


class ConstraintError(ValidationError):
    """A generation parameter lies outside the model's allowed range."""

    def __init__(self, message: str, *, parameter: str | None = None) -> None:
        super().__init__(message)
        self.parameter = parameter


class ModelNotFoundError(GenerationError):
    category = "model"
    default_user_message = "The requested AI model is not available. Please try a different model."


class QuotaExceededError(GenerationError):
    category = "quota"
    default_user_message = "AI provider quota exceeded. Please check your usage limits."


class RequestTimeoutError(GenerationError):
    category = "timeout"
    retryable = True
    default_user_message = "AI request timed out. Please try again."


class StreamingError(GenerationError):
    category = "streaming"


class ParsingError(GenerationError):
    category = "parsing"


class SerializationError(ParsingError):
    category = "serialization"


def is_retryable(exc: BaseException) -> bool:
    """Pure classification of whether a failure is worth retrying."""
    if isinstance(exc, GenerationError):
        return exc.retryable
    return isinstance(exc, httpx.TransportError)


def error_category(exc: BaseException) -> str:
    if isinstance(exc, GenerationError):
        return exc.category
    if isinstance(exc, httpx.TimeoutException):
        return "timeout"
    if isinstance(exc, httpx.TransportError):
        return "http"
    return "unknown"


def user_message_for(exc: BaseException) -> str:
    """Display-safe message for any exception."""
    if isinstance(exc, GenerationError):
        return exc.user_message
    return GenerationError.default_user_message


def _retry_after_seconds(headers: Mapping[str, str] | None) -> float | None:
    if not headers:
        return None
    raw = headers.get("retry-after") or headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        return None


def default_error_message(body: str) -> str | None:
    """Pull ``error.message`` out of a JSON error body, if present."""
    try:
        payload = json.loads(body)
    except (TypeError, ValueError):
        return None
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    if isinstance(error, str):
        return error
    return None


def map_http_status(
    status_code: int,
    body: str,
    *,
    provider: str,
    headers: Mapping[str, str] | None = None,
    message_extractor: Callable[[str], str | None] = default_error_message,
) -> GenerationError:
    """Translate a non-2xx response into the matching domain error."""
    if status_code == 401:
        return AuthenticationError("Invalid API key")
    if status_code == 429:
        return RateLimitError("Rate limit exceeded", retry_after=_retry_after_seconds(headers))
    if status_code == 400:
        return InvalidRequestError(message_extractor(body) or body)
    return ProviderError(
        f"{provider} API error ({status_code}): {body}",
        status_code=status_code,
        body=body,
    )


def map_transport_error(exc: httpx.TransportError, *, provider: str) -> GenerationError:
    """Translate an httpx transport failure raised before any response."""
    if isinstance(exc, httpx.TimeoutException):
        return RequestTimeoutError(f"{provider} request timed out: {exc}")
    return NetworkError(f"{provider} request failed: {exc}")
