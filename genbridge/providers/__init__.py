"""Provider adapters."""

from .anthropic_client import AnthropicProvider
from .base import BaseProvider
from .factory import create_provider, is_provider_supported, provider_class, supported_providers
from .ollama_client import OllamaProvider
from .openai_client import OpenAIProvider

__all__ = [
    "BaseProvider",
    "AnthropicProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "create_provider",
    "is_provider_supported",
    "provider_class",
    "supported_providers",
]
