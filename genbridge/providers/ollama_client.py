"""Ollama local-runtime adapter (newline-delimited JSON chat API)."""

from __future__ import annotations

from typing import Any

from ..config import ProviderType
from ..streaming import OllamaStreamDecoder
from ..types import (
    GenerationRequest,
    GenerationResponse,
    MessageRole,
    ModelInfo,
    ProviderCapabilities,
    TokenUsage,
)

from .base import BaseProvider


DEFAULT_CONTEXT_LENGTH = 8192


class OllamaProvider(BaseProvider):
    """Adapter for ``POST api/chat``.

    Roles pass through unchanged except ``function``, which the runtime does
    not understand and is downgraded to ``assistant`` (the function name is
    lost).
    """

    provider_type = ProviderType.OLLAMA
    display_name = "Ollama"
    description = "Local AI model runner for open-source language models"
    chat_path = "api/chat"

    def _build_payload(self, request: GenerationRequest, *, stream: bool) -> dict[str, Any]:
        messages = []
        for message in request.messages:
            role = MessageRole.ASSISTANT if message.role is MessageRole.FUNCTION else message.role
            messages.append({"role": role.value, "content": message.content})

        params = request.params
        options: dict[str, Any] = {}
        if params.temperature is not None:
            options["temperature"] = params.temperature
        if params.top_p is not None:
            options["top_p"] = params.top_p
        if params.top_k is not None:
            options["top_k"] = params.top_k
        if params.max_tokens is not None:
            options["num_predict"] = params.max_tokens

        return {"model": request.model, "messages": messages, "stream": stream, "options": options}

    def _parse_response(self, data: dict[str, Any], request: GenerationRequest, elapsed_ms: int) -> GenerationResponse:
        message = data["message"]

        usage = None
        if "prompt_eval_count" in data or "eval_count" in data:
            usage = TokenUsage(
                prompt_tokens=int(data.get("prompt_eval_count", 0) or 0),
                completion_tokens=int(data.get("eval_count", 0) or 0),
            )

        return GenerationResponse(
            content=message.get("content") or "",
            model=data.get("model") or request.model,
            usage=usage,
            finish_reason=data.get("done_reason") or "stop",
            response_time_ms=elapsed_ms,
            metadata={"done": bool(data.get("done")), "provider": self.provider_type.value},
        )

    def _new_decoder(self) -> OllamaStreamDecoder:
        return OllamaStreamDecoder()

    async def _probe(self) -> None:
        await self._request("GET", "api/tags")

    async def get_models(self) -> list[ModelInfo]:
        """Models currently pulled into the local runtime."""
        response = await self._request("GET", "api/tags")
        data = self._decode_json(response)

        models: list[ModelInfo] = []
        for entry in data.get("models") or []:
            name = str(entry.get("name", ""))
            if not name:
                continue
            configured = self.config.get_model(name)
            if configured is not None:
                models.append(self._model_info(configured))
                continue
            models.append(
                ModelInfo(
                    id=name,
                    name=name,
                    context_length=DEFAULT_CONTEXT_LENGTH,
                    supports_streaming=True,
                    supports_functions=False,
                    cost_per_1k_input=0.0,
                    cost_per_1k_output=0.0,
                )
            )
        return models

    @classmethod
    def capabilities(cls) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_streaming=True,
            supports_functions=False,
            supports_vision=False,
            supports_fine_tuning=False,
            max_context_length=DEFAULT_CONTEXT_LENGTH,
            supported_formats=["text"],
            rate_limits=None,
        )
