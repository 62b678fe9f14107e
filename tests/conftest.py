"""Shared fixtures: fake HTTP backends built on httpx.MockTransport."""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Callable, Iterable

import httpx
import pytest

from genbridge.config import ProviderConfig
from genbridge.types import ChatMessage, GenerationParams, GenerationRequest


class RecordingBackend:
    """Mock transport handler that records requests and replays a responder."""

    def __init__(self, responder: Callable[[httpx.Request], httpx.Response]) -> None:
        self.responder = responder
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def last_json(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)


async def _byte_chunks(chunks: Iterable[bytes | str]) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk.encode("utf-8") if isinstance(chunk, str) else chunk


def streamed(chunks: Iterable[bytes | str], status_code: int = 200) -> httpx.Response:
    """Response whose body arrives as the given separate network chunks."""
    return httpx.Response(status_code, content=_byte_chunks(list(chunks)))


def simple_request(model: str, **params: Any) -> GenerationRequest:
    return GenerationRequest(
        messages=[ChatMessage.system("Be brief."), ChatMessage.user("Say hello.")],
        model=model,
        params=GenerationParams(**params),
    )


@pytest.fixture
def openai_config() -> ProviderConfig:
    return ProviderConfig.openai("sk-test")


@pytest.fixture
def anthropic_config() -> ProviderConfig:
    return ProviderConfig.anthropic("sk-ant-test")


@pytest.fixture
def ollama_config() -> ProviderConfig:
    return ProviderConfig.ollama("http://ollama.test:11434")
