"""Provider-agnostic request, response and stream value types."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Union

from .utils.timeutil import utc_now


class MessageRole(str, Enum):
    """Role of a message in a conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    FUNCTION = "function"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """One immutable conversation turn."""

    role: MessageRole
    content: str
    name: str | None = None
    function_call: dict[str, Any] | None = None
    timestamp: datetime | None = None

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(role=MessageRole.SYSTEM, content=content, timestamp=utc_now())

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role=MessageRole.USER, content=content, timestamp=utc_now())

    @classmethod
    def assistant(cls, content: str) -> "ChatMessage":
        return cls(role=MessageRole.ASSISTANT, content=content, timestamp=utc_now())

    @classmethod
    def function(cls, content: str, name: str, function_call: dict[str, Any] | None = None) -> "ChatMessage":
        return cls(
            role=MessageRole.FUNCTION,
            content=content,
            name=name,
            function_call=function_call,
            timestamp=utc_now(),
        )

    def with_name(self, name: str) -> "ChatMessage":
        """Return a copy carrying the given participant name."""
        return replace(self, name=name)


@dataclass(frozen=True, slots=True)
class GenerationParams:
    """Sampling parameters; ``None`` means "use the backend default"."""

    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    top_k: int | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    stop_sequences: tuple[str, ...] | None = None
    seed: int | None = None

    def __post_init__(self) -> None:
        if self.stop_sequences is not None and not isinstance(self.stop_sequences, tuple):
            object.__setattr__(self, "stop_sequences", tuple(self.stop_sequences))

    def to_dict(self) -> dict[str, Any]:
        """Serialize only the parameters that are set."""
        payload: dict[str, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if value is None:
                continue
            payload[item.name] = list(value) if item.name == "stop_sequences" else value
        return payload

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> "GenerationParams":
        """Build params from a mapping, ignoring unknown keys."""
        if not raw:
            return cls()
        known = {item.name for item in fields(cls)}
        return cls(**{key: value for key, value in raw.items() if key in known and value is not None})


@dataclass(slots=True)
class GenerationRequest:
    """A unified generation request routed to the active provider."""

    messages: list[ChatMessage]
    model: str
    params: GenerationParams = field(default_factory=GenerationParams)
    stream: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    def with_model(self, model: str) -> "GenerationRequest":
        return replace(self, model=model, messages=list(self.messages), metadata=dict(self.metadata))

    def with_params(self, params: GenerationParams) -> "GenerationRequest":
        return replace(self, params=params, messages=list(self.messages), metadata=dict(self.metadata))

    def with_metadata(self, key: str, value: Any) -> "GenerationRequest":
        return replace(self, messages=list(self.messages), metadata={**self.metadata, key: value})


@dataclass(frozen=True, slots=True)
class TokenUsage:
    """Token accounting for one call; the total is always derived."""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "total_tokens", self.prompt_tokens + self.completion_tokens)


@dataclass(slots=True)
class GenerationResponse:
    """Normalized response returned by every provider."""

    content: str
    model: str
    usage: TokenUsage | None = None
    finish_reason: str | None = None
    response_time_ms: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            "content": self.content,
            "model": self.model,
            "usage": asdict(self.usage) if self.usage is not None else None,
            "finish_reason": self.finish_reason,
            "response_time_ms": self.response_time_ms,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class StreamChunk:
    """Incremental text emitted while a stream is open."""

    delta: str


@dataclass(frozen=True, slots=True)
class StreamFinished:
    """Terminal stream event; nothing follows it."""

    finish_reason: str | None = None
    usage: TokenUsage | None = None


StreamEvent = Union[StreamChunk, StreamFinished]


@dataclass(slots=True)
class ModelInfo:
    """Model description returned by provider discovery."""

    id: str
    name: str
    description: str | None = None
    context_length: int | None = None
    max_output_tokens: int | None = None
    supports_streaming: bool = False
    supports_functions: bool = False
    cost_per_1k_input: float | None = None
    cost_per_1k_output: float | None = None


@dataclass(slots=True)
class ProviderCapabilities:
    """Static feature and rate-limit hints for one adapter type."""

    supports_streaming: bool = False
    supports_functions: bool = False
    supports_vision: bool = False
    supports_fine_tuning: bool = False
    max_context_length: int | None = None
    supported_formats: list[str] = field(default_factory=lambda: ["text"])
    rate_limits: dict[str, int] | None = None
