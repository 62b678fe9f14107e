"""Tests for the OpenAI adapter against a mocked HTTP backend."""

from __future__ import annotations

import asyncio
import gc
import json

import httpx
import pytest

from conftest import RecordingBackend, simple_request, streamed
from genbridge.config import ProviderConfig
from genbridge.errors import (
    AuthenticationError,
    ConfigurationError,
    InvalidRequestError,
    ModelNotFoundError,
    NetworkError,
    ParsingError,
    ProviderError,
    RateLimitError,
)
from genbridge.providers import OpenAIProvider
from genbridge.types import ChatMessage, GenerationRequest, StreamChunk, StreamFinished


def _completion(content: str = "Hello there") -> dict:
    return {
        "id": "chatcmpl-1",
        "model": "gpt-4o-mini",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }


def test_generate_maps_payload_and_response(openai_config: ProviderConfig) -> None:
    """Every set parameter maps 1:1 and the response is normalized."""
    openai_config.organization = "org-1"
    backend = RecordingBackend(lambda request: httpx.Response(200, json=_completion()))

    async def _run() -> None:
        async with OpenAIProvider(openai_config, transport=backend.transport) as provider:
            request = simple_request(
                "gpt-4o-mini",
                temperature=0.3,
                max_tokens=64,
                top_p=0.9,
                frequency_penalty=0.1,
                presence_penalty=0.2,
                stop_sequences=["END"],
                seed=7,
            )
            response = await provider.generate(request)

            assert response.content == "Hello there"
            assert response.finish_reason == "stop"
            assert response.usage.total_tokens == 15
            assert response.metadata["id"] == "chatcmpl-1"

            sent = backend.requests[0]
            assert sent.url.path == "/v1/chat/completions"
            assert sent.headers["authorization"] == "Bearer sk-test"
            assert sent.headers["openai-organization"] == "org-1"
            assert sent.headers["user-agent"].startswith("genbridge/")

            body = backend.last_json()
            assert body["model"] == "gpt-4o-mini"
            assert body["stream"] is False
            assert body["messages"] == [
                {"role": "system", "content": "Be brief."},
                {"role": "user", "content": "Say hello."},
            ]
            assert body["temperature"] == 0.3
            assert body["max_tokens"] == 64
            assert body["top_p"] == 0.9
            assert body["frequency_penalty"] == 0.1
            assert body["presence_penalty"] == 0.2
            assert body["stop"] == ["END"]
            assert body["seed"] == 7
            assert "top_k" not in body

            stats = provider.stats()
            assert stats.total_requests == 1
            assert stats.successful_requests == 1
            assert stats.total_tokens_used == 15
            assert stats.total_cost == pytest.approx(10 / 1000 * 0.00015 + 5 / 1000 * 0.00060)

    asyncio.run(_run())


def test_unset_params_are_omitted(openai_config: ProviderConfig) -> None:
    backend = RecordingBackend(lambda request: httpx.Response(200, json=_completion()))

    async def _run() -> None:
        async with OpenAIProvider(openai_config, transport=backend.transport) as provider:
            message = ChatMessage.user("hi").with_name("alice")
            await provider.generate(GenerationRequest(messages=[message], model="gpt-4o"))
            body = backend.last_json()
            assert set(body) == {"model", "messages", "stream"}
            assert body["messages"][0]["name"] == "alice"

    asyncio.run(_run())


@pytest.mark.parametrize(
    "status,body,expected",
    [
        (401, '{"error": {"message": "bad key"}}', AuthenticationError),
        (429, '{"error": {"message": "slow"}}', RateLimitError),
        (400, '{"error": {"message": "bad max_tokens"}}', InvalidRequestError),
        (500, "internal", ProviderError),
    ],
)
def test_status_errors_are_classified_and_counted(openai_config: ProviderConfig, status, body, expected) -> None:
    backend = RecordingBackend(lambda request: httpx.Response(status, text=body))

    async def _run() -> None:
        async with OpenAIProvider(openai_config, transport=backend.transport) as provider:
            with pytest.raises(expected):
                await provider.generate(simple_request("gpt-4o-mini"))
            stats = provider.stats()
            assert stats.failed_requests == 1
            assert stats.successful_requests == 0

    asyncio.run(_run())


def test_transport_failure_is_network_error(openai_config: ProviderConfig) -> None:
    def _refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def _run() -> None:
        async with OpenAIProvider(openai_config, transport=httpx.MockTransport(_refuse)) as provider:
            with pytest.raises(NetworkError):
                await provider.generate(simple_request("gpt-4o-mini"))

    asyncio.run(_run())


def test_malformed_success_bodies(openai_config: ProviderConfig) -> None:
    async def _run() -> None:
        not_json = RecordingBackend(lambda request: httpx.Response(200, text="<html>"))
        async with OpenAIProvider(openai_config, transport=not_json.transport) as provider:
            with pytest.raises(ParsingError):
                await provider.generate(simple_request("gpt-4o-mini"))

        no_choices = RecordingBackend(lambda request: httpx.Response(200, json={"choices": []}))
        async with OpenAIProvider(openai_config, transport=no_choices.transport) as provider:
            with pytest.raises(ProviderError):
                await provider.generate(simple_request("gpt-4o-mini"))

    asyncio.run(_run())


def test_model_validation(openai_config: ProviderConfig) -> None:
    openai_config.get_model("gpt-4-turbo").enabled = False
    backend = RecordingBackend(lambda request: httpx.Response(200, json=_completion()))

    async def _run() -> None:
        async with OpenAIProvider(openai_config, transport=backend.transport) as provider:
            with pytest.raises(InvalidRequestError):
                await provider.generate(simple_request(""))
            with pytest.raises(ModelNotFoundError):
                await provider.generate(simple_request("gpt-4-turbo"))
            # Unlisted models are passed through to the backend.
            await provider.generate(simple_request("gpt-4.1-preview"))
            assert len(backend.requests) == 1

    asyncio.run(_run())


def test_streaming_matches_non_streaming_text(openai_config: ProviderConfig) -> None:
    """Concatenated deltas reproduce the non-streaming content."""
    frames = [
        'data: {"choices":[{"delta":{"role":"assistant","content":"Hel"}}]}\n\ndata: {"choi',
        'ces":[{"delta":{"content":"lo there"}}]}\n\n',
        'data: {"choices":[{"delta":{},"finish_reason":"stop"}]}\n\ndata: [DONE]\n\n',
    ]

    def _respond(request: httpx.Request) -> httpx.Response:
        if json.loads(request.content)["stream"]:
            return streamed(frames)
        return httpx.Response(200, json=_completion("Hello there"))

    backend = RecordingBackend(_respond)

    async def _run() -> None:
        async with OpenAIProvider(openai_config, transport=backend.transport) as provider:
            full = await provider.generate(simple_request("gpt-4o-mini"))

            stream = await provider.generate_stream(simple_request("gpt-4o-mini"))
            events = [event async for event in stream]

            chunks = [event.delta for event in events if isinstance(event, StreamChunk)]
            assert "".join(chunks) == full.content
            assert isinstance(events[-1], StreamFinished)
            assert events[-1].finish_reason == "stop"
            assert provider.stats().successful_requests == 2

    asyncio.run(_run())


class _TrackedBody(httpx.AsyncByteStream):
    def __init__(self, chunks: list[bytes]) -> None:
        self.chunks = chunks
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


def test_stream_dropped_before_iteration_is_closed(openai_config: ProviderConfig) -> None:
    body = _TrackedBody([b'data: {"choices":[{"delta":{"content":"unused"}}]}\n\n'])
    backend = RecordingBackend(lambda request: httpx.Response(200, stream=body))

    async def _run() -> None:
        provider = OpenAIProvider(openai_config, transport=backend.transport)
        stream = await provider.generate_stream(simple_request("gpt-4o-mini"))
        del stream
        gc.collect()

        await provider.close()
        assert body.closed is True
        assert provider.stats().failed_requests == 1

    asyncio.run(_run())


def test_consumed_stream_is_not_counted_again_on_close(openai_config: ProviderConfig) -> None:
    frames = ['data: {"choices":[{"delta":{"content":"ok"},"finish_reason":"stop"}]}\n\ndata: [DONE]\n\n']
    backend = RecordingBackend(lambda request: streamed(frames))

    async def _run() -> None:
        provider = OpenAIProvider(openai_config, transport=backend.transport)
        stream = await provider.generate_stream(simple_request("gpt-4o-mini"))
        events = [event async for event in stream]
        assert events[-1] == StreamFinished(finish_reason="stop")

        await provider.close()
        stats = provider.stats()
        assert stats.successful_requests == 1
        assert stats.failed_requests == 0

    asyncio.run(_run())


def test_streaming_status_error_raised_before_iteration(openai_config: ProviderConfig) -> None:
    backend = RecordingBackend(lambda request: httpx.Response(429, headers={"Retry-After": "3"}, text="limited"))

    async def _run() -> None:
        async with OpenAIProvider(openai_config, transport=backend.transport) as provider:
            with pytest.raises(RateLimitError) as excinfo:
                await provider.generate_stream(simple_request("gpt-4o-mini"))
            assert excinfo.value.retry_after == 3.0
            assert provider.stats().failed_requests == 1

    asyncio.run(_run())


def test_get_models_filters_and_annotates(openai_config: ProviderConfig) -> None:
    listing = {
        "data": [
            {"id": "gpt-4o"},
            {"id": "gpt-4o-2024-08-06"},
            {"id": "gpt-5-experimental"},
            {"id": "text-embedding-3-small"},
            {"id": "dall-e-3"},
        ]
    }
    backend = RecordingBackend(lambda request: httpx.Response(200, json=listing))

    async def _run() -> None:
        async with OpenAIProvider(openai_config, transport=backend.transport) as provider:
            models = {model.id: model for model in await provider.get_models()}
            assert set(models) == {"gpt-4o", "gpt-4o-2024-08-06", "gpt-5-experimental"}
            assert models["gpt-4o"].name == "GPT-4o"
            assert models["gpt-4o-2024-08-06"].cost_per_1k_input == 0.0050
            assert models["gpt-5-experimental"].context_length == 8192
            assert backend.requests[0].url.path == "/v1/models"

    asyncio.run(_run())


def test_health_check_never_raises(openai_config: ProviderConfig) -> None:
    async def _run() -> None:
        healthy = RecordingBackend(lambda request: httpx.Response(200, json={"data": []}))
        async with OpenAIProvider(openai_config, transport=healthy.transport) as provider:
            assert await provider.health_check() is True

        broken = RecordingBackend(lambda request: httpx.Response(401, text="no"))
        async with OpenAIProvider(openai_config, transport=broken.transport) as provider:
            assert await provider.health_check() is False

    asyncio.run(_run())


def test_cost_estimate_and_capabilities(openai_config: ProviderConfig) -> None:
    async def _run() -> None:
        async with OpenAIProvider(openai_config, transport=httpx.MockTransport(lambda r: httpx.Response(200))) as provider:
            assert provider.estimate_cost(1000, 1000, "gpt-4o") == pytest.approx(0.0050 + 0.0150)
            assert provider.estimate_cost(2000, 2000, "gpt-4o") == pytest.approx(2 * (0.0050 + 0.0150))
            assert provider.estimate_cost(10, 10, "unknown") is None
            assert provider.default_model == "gpt-4o-mini"
            assert provider.supports_functions() is True
            assert provider.capabilities().max_context_length == 128000

    asyncio.run(_run())


def test_malformed_api_key_rejected() -> None:
    with pytest.raises(ConfigurationError):
        OpenAIProvider(ProviderConfig.openai("sk-bad\nkey"))
