"""Model descriptor and selection-criteria types."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Iterator, Mapping

from ..config import ProviderType
from ..types import GenerationParams


class PerformancePriority(str, Enum):
    SPEED = "speed"
    QUALITY = "quality"
    COST = "cost"
    BALANCED = "balanced"


class UseCase(str, Enum):
    CASE_STUDY_GENERATION = "case_study_generation"
    QUESTION_GENERATION = "question_generation"
    CONTENT_ANALYSIS = "content_analysis"
    SUMMARY_GENERATION = "summary_generation"
    CODE_GENERATION = "code_generation"
    GENERAL_CHAT = "general_chat"
    CREATIVE_WRITING = "creative_writing"


@dataclass(frozen=True, slots=True)
class ModelCapabilities:
    supports_streaming: bool = True
    supports_function_calling: bool = False
    supports_vision: bool = False
    supports_system_prompt: bool = True
    max_output_tokens: int | None = None
    supported_formats: tuple[str, ...] = ("text",)

    def supports(self, capability: str) -> bool:
        """Named feature flag, or membership in the supported formats."""
        name = capability.strip().lower()
        if name == "streaming":
            return self.supports_streaming
        if name == "function_calling":
            return self.supports_function_calling
        if name == "vision":
            return self.supports_vision
        if name == "system_prompt":
            return self.supports_system_prompt
        return name in self.supported_formats


@dataclass(frozen=True, slots=True)
class ParameterRange:
    """Closed numeric range with a default inside it."""

    min: float
    max: float
    default: float
    step: float | None = None

    def __post_init__(self) -> None:
        if not self.min <= self.default <= self.max:
            raise ValueError(f"Invalid range: expected {self.min} <= {self.default} <= {self.max}")

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max

    def clamp(self, value: float) -> float:
        if value < self.min:
            return self.min
        if value > self.max:
            return self.max
        return value

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ParameterRange":
        return cls(min=raw["min"], max=raw["max"], default=raw["default"], step=raw.get("step"))


@dataclass(frozen=True, slots=True)
class ParameterConstraints:
    """Per-parameter ranges plus an optional stop-sequence allow-list."""

    temperature: ParameterRange | None = None
    max_tokens: ParameterRange | None = None
    top_p: ParameterRange | None = None
    top_k: ParameterRange | None = None
    frequency_penalty: ParameterRange | None = None
    presence_penalty: ParameterRange | None = None
    stop_sequences: tuple[str, ...] | None = None

    def ranges(self) -> Iterator[tuple[str, ParameterRange]]:
        for item in fields(self):
            value = getattr(self, item.name)
            if isinstance(value, ParameterRange):
                yield item.name, value

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> "ParameterConstraints":
        if not raw:
            return cls()
        kwargs: dict[str, Any] = {}
        for item in fields(cls):
            value = raw.get(item.name)
            if value is None:
                continue
            if item.name == "stop_sequences":
                kwargs[item.name] = tuple(str(seq) for seq in value)
            else:
                kwargs[item.name] = ParameterRange.from_dict(value)
        return cls(**kwargs)


@dataclass(frozen=True, slots=True)
class ModelDescriptor:
    """Registry entry, independent of whether the backend is reachable.

    ``api_model`` is the identifier sent on the wire; it defaults to ``id``.
    """

    id: str
    name: str
    provider: ProviderType
    context_length: int
    cost_per_1k_input: float | None = None
    cost_per_1k_output: float | None = None
    capabilities: ModelCapabilities = field(default_factory=ModelCapabilities)
    default_params: GenerationParams = field(default_factory=GenerationParams)
    constraints: ParameterConstraints = field(default_factory=ParameterConstraints)
    available: bool = True
    recommended: bool = False
    api_model: str = ""
    description: str | None = None

    def __post_init__(self) -> None:
        if not self.api_model:
            object.__setattr__(self, "api_model", self.id)


@dataclass(slots=True)
class SelectionCriteria:
    """Declarative input to :meth:`ModelRegistry.select_best`."""

    provider: ProviderType | None = None
    max_cost_per_request: float | None = None
    min_context_length: int | None = None
    required_capabilities: set[str] = field(default_factory=set)
    performance_priority: PerformancePriority = PerformancePriority.BALANCED
    use_case: UseCase = UseCase.GENERAL_CHAT
