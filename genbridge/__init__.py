"""Unified async client over OpenAI, Anthropic and Ollama generation backends."""

from .catalog import ModelRegistry, PerformancePriority, SelectionCriteria, UseCase
from .config import AIConfig, ModelConfig, ProviderConfig, ProviderType, load_ai_config
from .errors import GenerationError, is_retryable
from .manager import ProviderManager
from .providers import BaseProvider, create_provider
from .types import (
    ChatMessage,
    GenerationParams,
    GenerationRequest,
    GenerationResponse,
    MessageRole,
    StreamChunk,
    StreamEvent,
    StreamFinished,
    TokenUsage,
)

__version__ = "0.1.0"

__all__ = [
    "AIConfig",
    "BaseProvider",
    "ChatMessage",
    "GenerationError",
    "GenerationParams",
    "GenerationRequest",
    "GenerationResponse",
    "MessageRole",
    "ModelConfig",
    "ModelRegistry",
    "PerformancePriority",
    "ProviderConfig",
    "ProviderManager",
    "ProviderType",
    "SelectionCriteria",
    "StreamChunk",
    "StreamEvent",
    "StreamFinished",
    "TokenUsage",
    "UseCase",
    "create_provider",
    "is_retryable",
    "load_ai_config",
]
