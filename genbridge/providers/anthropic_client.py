"""Anthropic messages adapter over raw HTTP."""

from __future__ import annotations

from typing import Any

from ..config import ProviderType
from ..streaming import AnthropicStreamDecoder
from ..types import (
    GenerationRequest,
    GenerationResponse,
    MessageRole,
    ModelInfo,
    ProviderCapabilities,
    TokenUsage,
)

from .base import BaseProvider


ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096


class AnthropicProvider(BaseProvider):
    """Adapter for ``POST v1/messages`` with typed SSE streaming.

    System messages travel in the top-level ``system`` field; function-role
    messages are sent as assistant turns because the API has no such role.
    """

    provider_type = ProviderType.ANTHROPIC
    display_name = "Anthropic"
    description = "Anthropic's Claude models for safe, helpful, and honest AI assistance"
    chat_path = "v1/messages"
    has_discovery = False

    def _auth_headers(self) -> dict[str, str]:
        return {
            "x-api-key": self._checked_api_key(self.config.api_key),
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def _build_payload(self, request: GenerationRequest, *, stream: bool) -> dict[str, Any]:
        system_parts: list[str] = []
        messages: list[dict[str, Any]] = []
        for message in request.messages:
            if message.role is MessageRole.SYSTEM:
                system_parts.append(message.content)
                continue
            role = "user" if message.role is MessageRole.USER else "assistant"
            messages.append({"role": role, "content": message.content})

        params = request.params
        payload: dict[str, Any] = {
            "model": request.model,
            "max_tokens": params.max_tokens if params.max_tokens is not None else DEFAULT_MAX_TOKENS,
            "messages": messages,
            "stream": stream,
        }
        if system_parts:
            payload["system"] = "\n\n".join(system_parts)
        if params.temperature is not None:
            payload["temperature"] = params.temperature
        if params.top_p is not None:
            payload["top_p"] = params.top_p
        if params.top_k is not None:
            payload["top_k"] = params.top_k
        if params.stop_sequences:
            payload["stop_sequences"] = list(params.stop_sequences)
        return payload

    def _parse_response(self, data: dict[str, Any], request: GenerationRequest, elapsed_ms: int) -> GenerationResponse:
        text_chunks = [block["text"] for block in data["content"] if block.get("type") == "text"]

        usage = None
        raw_usage = data.get("usage")
        if isinstance(raw_usage, dict):
            usage = TokenUsage(
                prompt_tokens=int(raw_usage.get("input_tokens", 0) or 0),
                completion_tokens=int(raw_usage.get("output_tokens", 0) or 0),
            )

        return GenerationResponse(
            content="".join(text_chunks),
            model=data.get("model") or request.model,
            usage=usage,
            finish_reason=data.get("stop_reason"),
            response_time_ms=elapsed_ms,
            metadata={"id": data.get("id"), "provider": self.provider_type.value},
        )

    def _new_decoder(self) -> AnthropicStreamDecoder:
        return AnthropicStreamDecoder()

    async def _probe(self) -> None:
        await self._request(
            "POST",
            self.chat_path,
            json_body={
                "model": self.default_model,
                "max_tokens": 1,
                "messages": [{"role": "user", "content": "Hi"}],
            },
        )

    async def get_models(self) -> list[ModelInfo]:
        """No discovery endpoint is used; the configured list is authoritative."""
        return [self._model_info(model) for model in self.config.enabled_models()]

    @classmethod
    def capabilities(cls) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_streaming=True,
            supports_functions=False,
            supports_vision=True,
            supports_fine_tuning=False,
            max_context_length=200000,
            supported_formats=["text", "image"],
            rate_limits={"requests_per_minute": 4000, "tokens_per_minute": 400000},
        )
