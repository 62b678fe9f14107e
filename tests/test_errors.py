"""Tests for error classification and HTTP status mapping."""

from __future__ import annotations

import httpx

from genbridge.errors import (
    AuthenticationError,
    ConfigurationError,
    ConstraintError,
    InvalidRequestError,
    NetworkError,
    NoMatchingModelError,
    ProviderError,
    RateLimitError,
    RequestTimeoutError,
    StreamingError,
    ValidationError,
    error_category,
    is_retryable,
    map_http_status,
    map_transport_error,
    user_message_for,
)


def test_retryability_classification() -> None:
    assert is_retryable(NetworkError("down"))
    assert is_retryable(RateLimitError("slow down"))
    assert is_retryable(RequestTimeoutError("late"))
    assert is_retryable(httpx.ConnectError("refused"))

    assert not is_retryable(AuthenticationError("bad key"))
    assert not is_retryable(ConfigurationError("bad config"))
    assert not is_retryable(ValidationError("bad value"))
    assert not is_retryable(InvalidRequestError("bad request"))
    assert not is_retryable(ProviderError("500", status_code=500))
    assert not is_retryable(ValueError("unrelated"))


def test_status_mapping() -> None:
    assert isinstance(map_http_status(401, "nope", provider="OpenAI"), AuthenticationError)

    limited = map_http_status(429, "", provider="OpenAI", headers={"retry-after": "7"})
    assert isinstance(limited, RateLimitError)
    assert limited.retry_after == 7.0

    server = map_http_status(503, "unavailable", provider="Anthropic")
    assert isinstance(server, ProviderError)
    assert server.status_code == 503
    assert server.body == "unavailable"
    assert "503" in server.message


def test_bad_request_uses_structured_message_when_parseable() -> None:
    structured = map_http_status(400, '{"error": {"message": "max_tokens too large"}}', provider="OpenAI")
    assert isinstance(structured, InvalidRequestError)
    assert structured.message == "max_tokens too large"

    raw = map_http_status(400, "plain text failure", provider="OpenAI")
    assert raw.message == "plain text failure"


def test_transport_mapping() -> None:
    assert isinstance(map_transport_error(httpx.ReadTimeout("slow"), provider="Ollama"), RequestTimeoutError)
    assert isinstance(map_transport_error(httpx.ConnectError("refused"), provider="Ollama"), NetworkError)


def test_user_messages_hide_technical_detail() -> None:
    exc = AuthenticationError("key sk-123 rejected by upstream")
    assert "sk-123" not in exc.user_message
    assert exc.user_message == "AI provider authentication failed. Please check your API key."

    assert ValidationError("temperature too high").user_message == "Validation failed: temperature too high"
    assert user_message_for(RuntimeError("boom")) == (
        "An unexpected error occurred while processing your AI request."
    )


def test_subclass_categories() -> None:
    assert isinstance(NoMatchingModelError(), ConfigurationError)
    assert isinstance(ConstraintError("x", parameter="temperature"), ValidationError)
    assert error_category(StreamingError("cut")) == "streaming"
    assert error_category(RateLimitError("x")) == "rate_limit"
    assert error_category(httpx.ReadTimeout("x")) == "timeout"
