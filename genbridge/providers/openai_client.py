"""OpenAI chat-completions adapter over raw HTTP."""

from __future__ import annotations

from typing import Any

from ..config import ModelConfig, ProviderType
from ..errors import ProviderError
from ..streaming import OpenAIStreamDecoder
from ..types import GenerationRequest, GenerationResponse, ModelInfo, ProviderCapabilities, TokenUsage

from .base import BaseProvider


DEFAULT_CONTEXT_LENGTH = 8192


class OpenAIProvider(BaseProvider):
    """Adapter for ``POST chat/completions`` with SSE streaming."""

    provider_type = ProviderType.OPENAI
    display_name = "OpenAI"
    description = "OpenAI's GPT models for advanced language understanding and generation"
    chat_path = "chat/completions"

    def _auth_headers(self) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self._checked_api_key(self.config.api_key)}"}
        if self.config.organization:
            headers["OpenAI-Organization"] = self.config.organization
        if self.config.project:
            headers["OpenAI-Project"] = self.config.project
        return headers

    def _build_payload(self, request: GenerationRequest, *, stream: bool) -> dict[str, Any]:
        messages = []
        for message in request.messages:
            item: dict[str, Any] = {"role": message.role.value, "content": message.content}
            if message.name:
                item["name"] = message.name
            messages.append(item)

        params = request.params
        payload: dict[str, Any] = {"model": request.model, "messages": messages, "stream": stream}
        if params.temperature is not None:
            payload["temperature"] = params.temperature
        if params.max_tokens is not None:
            payload["max_tokens"] = params.max_tokens
        if params.top_p is not None:
            payload["top_p"] = params.top_p
        if params.frequency_penalty is not None:
            payload["frequency_penalty"] = params.frequency_penalty
        if params.presence_penalty is not None:
            payload["presence_penalty"] = params.presence_penalty
        if params.stop_sequences:
            payload["stop"] = list(params.stop_sequences)
        if params.seed is not None:
            payload["seed"] = params.seed
        return payload

    def _parse_response(self, data: dict[str, Any], request: GenerationRequest, elapsed_ms: int) -> GenerationResponse:
        choices = data.get("choices") or []
        if not choices:
            raise ProviderError("No choices in OpenAI response")
        choice = choices[0]

        usage = None
        raw_usage = data.get("usage")
        if isinstance(raw_usage, dict):
            usage = TokenUsage(
                prompt_tokens=int(raw_usage.get("prompt_tokens", 0) or 0),
                completion_tokens=int(raw_usage.get("completion_tokens", 0) or 0),
            )

        return GenerationResponse(
            content=choice["message"].get("content") or "",
            model=data.get("model") or request.model,
            usage=usage,
            finish_reason=choice.get("finish_reason"),
            response_time_ms=elapsed_ms,
            metadata={"id": data.get("id"), "provider": self.provider_type.value},
        )

    def _new_decoder(self) -> OpenAIStreamDecoder:
        return OpenAIStreamDecoder()

    async def _probe(self) -> None:
        await self._request("GET", "models")

    def _known_model(self, model_id: str) -> ModelConfig | None:
        exact = self.config.get_model(model_id)
        if exact is not None:
            return exact
        # Dated snapshots (gpt-4o-2024-08-06) inherit their family's metadata.
        prefixes = [model for model in self.config.models if model_id.startswith(model.name)]
        return max(prefixes, key=lambda model: len(model.name)) if prefixes else None

    async def get_models(self) -> list[ModelInfo]:
        response = await self._request("GET", "models")
        data = self._decode_json(response)

        models: list[ModelInfo] = []
        for entry in data.get("data") or []:
            model_id = str(entry.get("id", ""))
            if not model_id.startswith("gpt-"):
                continue
            known = self._known_model(model_id)
            if known is not None:
                info = self._model_info(known)
                info.id = model_id
                if known.name != model_id:
                    info.name = model_id
            else:
                info = ModelInfo(
                    id=model_id,
                    name=model_id,
                    context_length=DEFAULT_CONTEXT_LENGTH,
                    supports_streaming=True,
                    supports_functions=True,
                )
            models.append(info)
        return models

    @classmethod
    def capabilities(cls) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_streaming=True,
            supports_functions=True,
            supports_vision=True,
            supports_fine_tuning=True,
            max_context_length=128000,
            supported_formats=["text", "image"],
            rate_limits={"requests_per_minute": 10000, "tokens_per_minute": 2000000},
        )
