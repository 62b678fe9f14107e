"""Tests for the Anthropic adapter against a mocked HTTP backend."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from conftest import RecordingBackend, streamed
from genbridge.config import ProviderConfig
from genbridge.errors import InvalidRequestError, RateLimitError, StreamingError, is_retryable
from genbridge.providers import AnthropicProvider
from genbridge.types import ChatMessage, GenerationParams, GenerationRequest, StreamChunk, StreamFinished


MESSAGE = {
    "id": "msg_1",
    "type": "message",
    "model": "claude-3-5-sonnet-20241022",
    "content": [
        {"type": "text", "text": "Hello "},
        {"type": "tool_use", "id": "t1", "name": "noop", "input": {}},
        {"type": "text", "text": "world"},
    ],
    "stop_reason": "end_turn",
    "usage": {"input_tokens": 20, "output_tokens": 4},
}


def _conversation() -> list[ChatMessage]:
    return [
        ChatMessage.system("You are terse."),
        ChatMessage.user("Question?"),
        ChatMessage.system("Answer in English."),
        ChatMessage.function('{"result": 1}', name="lookup"),
    ]


def test_generate_extracts_system_and_defaults_max_tokens(anthropic_config: ProviderConfig) -> None:
    backend = RecordingBackend(lambda request: httpx.Response(200, json=MESSAGE))

    async def _run() -> None:
        async with AnthropicProvider(anthropic_config, transport=backend.transport) as provider:
            request = GenerationRequest(
                messages=_conversation(),
                model="claude-3-5-sonnet-20241022",
                params=GenerationParams(temperature=0.5, top_k=20, stop_sequences=["\n\nHuman:"]),
            )
            response = await provider.generate(request)

            assert response.content == "Hello world"
            assert response.finish_reason == "end_turn"
            assert response.usage.prompt_tokens == 20
            assert response.usage.completion_tokens == 4

            sent = backend.requests[0]
            assert sent.url.path == "/v1/messages"
            assert sent.headers["x-api-key"] == "sk-ant-test"
            assert sent.headers["anthropic-version"] == "2023-06-01"

            body = backend.last_json()
            assert body["system"] == "You are terse.\n\nAnswer in English."
            assert body["messages"] == [
                {"role": "user", "content": "Question?"},
                {"role": "assistant", "content": '{"result": 1}'},
            ]
            assert body["max_tokens"] == 4096
            assert body["temperature"] == 0.5
            assert body["top_k"] == 20
            assert body["stop_sequences"] == ["\n\nHuman:"]
            assert "frequency_penalty" not in body

    asyncio.run(_run())


def test_explicit_max_tokens_is_kept(anthropic_config: ProviderConfig) -> None:
    backend = RecordingBackend(lambda request: httpx.Response(200, json=MESSAGE))

    async def _run() -> None:
        async with AnthropicProvider(anthropic_config, transport=backend.transport) as provider:
            await provider.generate(
                GenerationRequest(
                    messages=[ChatMessage.user("hi")],
                    model="claude-3-5-haiku-20241022",
                    params=GenerationParams(max_tokens=100),
                )
            )
            body = backend.last_json()
            assert body["max_tokens"] == 100
            assert "system" not in body

    asyncio.run(_run())


def test_bad_request_uses_nested_error_message(anthropic_config: ProviderConfig) -> None:
    error_body = {"type": "error", "error": {"type": "invalid_request_error", "message": "messages: empty"}}
    backend = RecordingBackend(lambda request: httpx.Response(400, json=error_body))

    async def _run() -> None:
        async with AnthropicProvider(anthropic_config, transport=backend.transport) as provider:
            with pytest.raises(InvalidRequestError, match="messages: empty"):
                await provider.generate(GenerationRequest(messages=[], model="claude-3-5-sonnet-20241022"))

    asyncio.run(_run())


def test_rate_limit_is_retryable(anthropic_config: ProviderConfig) -> None:
    backend = RecordingBackend(lambda request: httpx.Response(429, text="rate limited"))

    async def _run() -> None:
        async with AnthropicProvider(anthropic_config, transport=backend.transport) as provider:
            with pytest.raises(RateLimitError) as excinfo:
                await provider.generate(GenerationRequest(messages=[ChatMessage.user("x")], model="claude-3-opus-20240229"))
            assert is_retryable(excinfo.value)

    asyncio.run(_run())


def test_stream_events(anthropic_config: ProviderConfig) -> None:
    frames = [
        "event: message_start\ndata: {\"type\":\"message_start\",\"message\":{\"usage\":{\"input_tokens\":9,\"output_tokens\":1}}}\n\n",
        "event: content_block_delta\ndata: {\"type\":\"content_block_delta\",\"index\":0,\"delta\":{\"type\":\"text_delta\",\"te",
        "xt\":\"Hi\"}}\n\nevent: message_delta\ndata: {\"type\":\"message_delta\",\"delta\":{\"stop_reason\":\"end_turn\"},\"usage\":{\"output_tokens\":2}}\n\n",
        "event: message_stop\ndata: {\"type\":\"message_stop\"}\n\n",
    ]
    backend = RecordingBackend(lambda request: streamed(frames))

    async def _run() -> None:
        async with AnthropicProvider(anthropic_config, transport=backend.transport) as provider:
            stream = await provider.generate_stream(
                GenerationRequest(messages=[ChatMessage.user("x")], model="claude-3-5-sonnet-20241022")
            )
            events = [event async for event in stream]

            assert events[0] == StreamChunk("Hi")
            assert isinstance(events[-1], StreamFinished)
            assert events[-1].usage.total_tokens == 11
            assert backend.last_json()["stream"] is True

            stats = provider.stats()
            assert stats.successful_requests == 1
            assert stats.total_tokens_used == 11

    asyncio.run(_run())


def test_stream_cut_before_completion_is_streaming_error(anthropic_config: ProviderConfig) -> None:
    frames = ['data: {"type":"content_block_delta","index":0,"delta":{"type":"text_delta","text":"Hi"}}\n\n']
    backend = RecordingBackend(lambda request: streamed(frames))

    async def _run() -> None:
        async with AnthropicProvider(anthropic_config, transport=backend.transport) as provider:
            stream = await provider.generate_stream(
                GenerationRequest(messages=[ChatMessage.user("x")], model="claude-3-5-sonnet-20241022")
            )
            received = []
            with pytest.raises(StreamingError):
                async for event in stream:
                    received.append(event)
            assert received == [StreamChunk("Hi")]
            assert provider.stats().failed_requests == 1

    asyncio.run(_run())


def test_models_and_health_probe(anthropic_config: ProviderConfig) -> None:
    backend = RecordingBackend(lambda request: httpx.Response(200, json=MESSAGE))

    async def _run() -> None:
        async with AnthropicProvider(anthropic_config, transport=backend.transport) as provider:
            models = await provider.get_models()
            assert [model.id for model in models] == [
                "claude-3-5-sonnet-20241022",
                "claude-3-5-haiku-20241022",
                "claude-3-opus-20240229",
            ]
            assert backend.requests == []

            assert await provider.health_check() is True
            probe = backend.last_json()
            assert probe["max_tokens"] == 1
            assert probe["model"] == "claude-3-5-sonnet-20241022"
            assert provider.supports_functions() is False

    asyncio.run(_run())
