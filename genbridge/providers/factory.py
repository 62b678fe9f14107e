"""Build a provider adapter from a provider type and its configuration."""

from __future__ import annotations

import logging

import httpx

from ..config import ProviderConfig, ProviderType
from ..errors import ConfigurationError, NetworkError

from .anthropic_client import AnthropicProvider
from .base import BaseProvider
from .ollama_client import OllamaProvider
from .openai_client import OpenAIProvider


logger = logging.getLogger(__name__)

_PROVIDERS: dict[ProviderType, type[BaseProvider]] = {
    ProviderType.OPENAI: OpenAIProvider,
    ProviderType.ANTHROPIC: AnthropicProvider,
    ProviderType.OLLAMA: OllamaProvider,
}


def supported_providers() -> list[ProviderType]:
    return list(_PROVIDERS)


def is_provider_supported(provider_type: ProviderType | str) -> bool:
    try:
        return ProviderType.parse(provider_type) in _PROVIDERS
    except ConfigurationError:
        return False


async def create_provider(
    provider_type: ProviderType | str,
    config: ProviderConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> BaseProvider:
    """Validate ``config`` and return a ready adapter.

    The local runtime is probed once before it is returned, so an unreachable
    daemon fails here with ``NetworkError`` instead of on the first request.
    """
    kind = ProviderType.parse(provider_type)
    if config.provider_type is not kind:
        raise ConfigurationError(f"Configuration is for {config.provider_type}, not {kind}")
    config.validate()

    provider = _PROVIDERS[kind](config, transport=transport)
    if kind is ProviderType.OLLAMA and not await provider.health_check():
        await provider.close()
        raise NetworkError(f"Cannot connect to Ollama at {config.api_base_url}")

    logger.debug("Created %s provider (default model %s)", provider.display_name, provider.default_model)
    return provider


def provider_class(provider_type: ProviderType | str) -> type[BaseProvider]:
    kind = ProviderType.parse(provider_type)
    return _PROVIDERS[kind]
