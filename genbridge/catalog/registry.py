"""Model registry, seed catalog loading and criteria-based selection."""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from threading import Lock
from typing import Any, Iterable, Mapping

import yaml

from ..config import ProviderType
from ..errors import ConstraintError, ModelNotFoundError, NoMatchingModelError
from ..types import GenerationParams, ModelInfo

from .descriptors import (
    ModelCapabilities,
    ModelDescriptor,
    ParameterConstraints,
    PerformancePriority,
    SelectionCriteria,
    UseCase,
)


SEED_CATALOG_PATH = Path(__file__).with_name("seed_models.yaml")

# Reference request size used for the cost filter and the cost bonus.
REFERENCE_INPUT_TOKENS = 1000
REFERENCE_OUTPUT_TOKENS = 500

SPEED_PATTERNS = ("turbo", "haiku")
QUALITY_PATTERNS = ("gpt-4", "opus")
CODE_PATTERNS = ("code",)


@dataclass(slots=True)
class SeedCatalog:
    """Normalized seed data used to build a registry."""

    models: list[ModelDescriptor]
    use_cases: dict[UseCase, list[str]]


def _normalize_capabilities(raw: Mapping[str, Any] | None) -> ModelCapabilities:
    raw = raw or {}
    max_output = raw.get("max_output_tokens")
    return ModelCapabilities(
        supports_streaming=bool(raw.get("streaming", True)),
        supports_function_calling=bool(raw.get("function_calling", False)),
        supports_vision=bool(raw.get("vision", False)),
        supports_system_prompt=bool(raw.get("system_prompt", True)),
        max_output_tokens=int(max_output) if max_output is not None else None,
        supported_formats=tuple(str(fmt) for fmt in raw.get("supported_formats", ["text"])),
    )


def _normalize_model_entry(model_id: str, entry: Mapping[str, Any]) -> ModelDescriptor:
    def _opt_float(key: str) -> float | None:
        value = entry.get(key)
        return float(value) if value is not None else None

    return ModelDescriptor(
        id=model_id,
        name=str(entry.get("name", model_id)),
        provider=ProviderType.parse(entry["provider"]),
        context_length=int(entry["context_length"]),
        cost_per_1k_input=_opt_float("cost_per_1k_input"),
        cost_per_1k_output=_opt_float("cost_per_1k_output"),
        capabilities=_normalize_capabilities(entry.get("capabilities")),
        default_params=GenerationParams.from_dict(entry.get("default_params")),
        constraints=ParameterConstraints.from_dict(entry.get("constraints")),
        available=bool(entry.get("available", True)),
        recommended=bool(entry.get("recommended", False)),
        api_model=str(entry.get("api_model") or model_id),
        description=entry.get("description"),
    )


def load_seed_catalog(*, config_path: Path | None = None, raw_config: Mapping[str, Any] | None = None) -> SeedCatalog:
    """Load and normalize a model catalog; defaults to the packaged seed file."""
    if raw_config is None:
        path = config_path or SEED_CATALOG_PATH
        raw_config = yaml.safe_load(path.read_text(encoding="utf-8"))

    if not isinstance(raw_config, Mapping):
        raise ValueError("Model catalog must be a mapping")
    raw_models = raw_config.get("models")
    if not isinstance(raw_models, Mapping):
        raise ValueError("Model catalog requires a 'models' mapping")

    models = [_normalize_model_entry(str(model_id), entry) for model_id, entry in raw_models.items()]
    known = {model.id for model in models}

    use_cases: dict[UseCase, list[str]] = {}
    for name, model_ids in (raw_config.get("use_cases") or {}).items():
        ids = [str(model_id) for model_id in model_ids or []]
        unknown = [model_id for model_id in ids if model_id not in known]
        if unknown:
            raise ValueError(f"Use case '{name}' references unknown models: {unknown}")
        use_cases[UseCase(name)] = ids

    return SeedCatalog(models=models, use_cases=use_cases)


class ModelRegistry:
    """Catalog of model descriptors with scoring, constraints and cost math.

    Read-mostly: only availability flags change after construction, and
    they change under the registry lock by swapping in a new descriptor.
    """

    def __init__(
        self,
        models: Iterable[ModelDescriptor] | None = None,
        use_cases: Mapping[UseCase, list[str]] | None = None,
    ) -> None:
        self._lock = Lock()
        self._models: dict[str, ModelDescriptor] = {}
        self._by_provider: dict[ProviderType, list[str]] = {}

        if models is None:
            seed = load_seed_catalog()
            models = seed.models
            if use_cases is None:
                use_cases = seed.use_cases

        for descriptor in models:
            self.add_model(descriptor)
        self._use_cases: dict[UseCase, list[str]] = {key: list(value) for key, value in (use_cases or {}).items()}

    @classmethod
    def from_catalog(cls, *, config_path: Path | None = None, raw_config: Mapping[str, Any] | None = None) -> "ModelRegistry":
        seed = load_seed_catalog(config_path=config_path, raw_config=raw_config)
        return cls(models=seed.models, use_cases=seed.use_cases)

    def add_model(self, descriptor: ModelDescriptor) -> None:
        with self._lock:
            self._models[descriptor.id] = descriptor
            ids = self._by_provider.setdefault(descriptor.provider, [])
            if descriptor.id not in ids:
                ids.append(descriptor.id)

    def get(self, model_id: str) -> ModelDescriptor | None:
        with self._lock:
            return self._models.get(model_id)

    def _require(self, model_id: str) -> ModelDescriptor:
        descriptor = self.get(model_id)
        if descriptor is None:
            raise ModelNotFoundError(f"Model '{model_id}' not found in registry")
        return descriptor

    def list_models(self, provider: ProviderType | None = None) -> list[ModelDescriptor]:
        """Available models, optionally restricted to one provider."""
        with self._lock:
            if provider is None:
                candidates = list(self._models.values())
            else:
                candidates = [self._models[model_id] for model_id in self._by_provider.get(provider, [])]
        return [descriptor for descriptor in candidates if descriptor.available]

    def all_models(self) -> list[ModelDescriptor]:
        """Every descriptor, available or not."""
        with self._lock:
            return list(self._models.values())

    def set_availability(self, model_id: str, available: bool) -> None:
        with self._lock:
            descriptor = self._models.get(model_id)
            if descriptor is None:
                raise ModelNotFoundError(f"Model '{model_id}' not found in registry")
            self._models[model_id] = replace(descriptor, available=available)

    def sync_availability(self, provider: ProviderType, present_model_ids: Iterable[str]) -> dict[str, bool]:
        """Mark a provider's models available iff the backend reports them.

        Local-runtime tags like ``llama2:latest`` match ``llama2``. Returns the
        resulting availability per model id.
        """
        present: set[str] = set()
        for model_id in present_model_ids:
            present.add(model_id)
            present.add(model_id.split(":", 1)[0])

        result: dict[str, bool] = {}
        with self._lock:
            for model_id in self._by_provider.get(provider, []):
                descriptor = self._models[model_id]
                available = descriptor.id in present or descriptor.api_model in present
                if available != descriptor.available:
                    self._models[model_id] = replace(descriptor, available=available)
                result[model_id] = available
        return result

    def recommended_for(self, use_case: UseCase) -> list[ModelDescriptor]:
        """Available models from the use case's preference list, in order."""
        recommended = []
        for model_id in self._use_cases.get(use_case, []):
            descriptor = self.get(model_id)
            if descriptor is not None and descriptor.available:
                recommended.append(descriptor)
        return recommended

    # -- selection -------------------------------------------------------

    def score(self, descriptor: ModelDescriptor, criteria: SelectionCriteria) -> float:
        """Additive score; higher is better."""
        model_id = descriptor.id.lower()
        score = 0.0
        if descriptor.available:
            score += 10.0
        if descriptor.recommended:
            score += 5.0

        priority = criteria.performance_priority
        if priority is PerformancePriority.SPEED:
            if any(pattern in model_id for pattern in SPEED_PATTERNS):
                score += 8.0
        elif priority is PerformancePriority.QUALITY:
            if any(pattern in model_id for pattern in QUALITY_PATTERNS):
                score += 8.0
        elif priority is PerformancePriority.COST:
            cost = self.estimate_cost(descriptor, REFERENCE_INPUT_TOKENS, REFERENCE_OUTPUT_TOKENS)
            score += (1.0 / (cost + 0.001)) * 2.0
        else:
            score += 3.0

        if criteria.use_case is UseCase.CASE_STUDY_GENERATION:
            if descriptor.context_length >= 8000:
                score += 5.0
        elif criteria.use_case is UseCase.CODE_GENERATION:
            if any(pattern in model_id for pattern in CODE_PATTERNS):
                score += 8.0
        return score

    def select_best(self, criteria: SelectionCriteria) -> ModelDescriptor:
        """Highest-scoring available model passing every hard filter.

        Candidates are ordered by id first, so ties resolve to the
        lexicographically smallest id.
        """
        candidates = sorted(self.list_models(), key=lambda descriptor: descriptor.id)

        if criteria.provider is not None:
            candidates = [d for d in candidates if d.provider is criteria.provider]
        if criteria.min_context_length is not None:
            candidates = [d for d in candidates if d.context_length >= criteria.min_context_length]
        for capability in sorted(criteria.required_capabilities):
            candidates = [d for d in candidates if d.capabilities.supports(capability)]
        if criteria.max_cost_per_request is not None:
            candidates = [
                d
                for d in candidates
                if self.estimate_cost(d, REFERENCE_INPUT_TOKENS, REFERENCE_OUTPUT_TOKENS) <= criteria.max_cost_per_request
            ]

        if not candidates:
            raise NoMatchingModelError()
        return max(candidates, key=lambda descriptor: self.score(descriptor, criteria))

    # -- parameters ------------------------------------------------------

    def parameter_constraints(self, model_id: str) -> ParameterConstraints | None:
        descriptor = self.get(model_id)
        return descriptor.constraints if descriptor is not None else None

    def validate_parameters(self, model_id: str, params: GenerationParams) -> None:
        """Raise ``ConstraintError`` for the first set parameter out of range."""
        constraints = self._require(model_id).constraints
        for name, bounds in constraints.ranges():
            value = getattr(params, name)
            if value is None:
                continue
            if not bounds.contains(value):
                raise ConstraintError(
                    f"{name} value {value} is outside [{bounds.min}, {bounds.max}] for model '{model_id}'",
                    parameter=name,
                )

        if constraints.stop_sequences is not None and params.stop_sequences:
            disallowed = [seq for seq in params.stop_sequences if seq not in constraints.stop_sequences]
            if disallowed:
                raise ConstraintError(
                    f"Stop sequences {disallowed} are not allowed for model '{model_id}'",
                    parameter="stop_sequences",
                )

    def adjust_parameters(self, model_id: str, params: GenerationParams) -> GenerationParams:
        """Clamp each set, constrained parameter into range; others pass through."""
        constraints = self._require(model_id).constraints
        changes: dict[str, Any] = {}
        for name, bounds in constraints.ranges():
            value = getattr(params, name)
            if value is None:
                continue
            clamped = bounds.clamp(value)
            if clamped != value:
                changes[name] = clamped

        if constraints.stop_sequences is not None and params.stop_sequences:
            allowed = tuple(seq for seq in params.stop_sequences if seq in constraints.stop_sequences)
            if allowed != params.stop_sequences:
                changes["stop_sequences"] = allowed

        return replace(params, **changes) if changes else params

    # -- cost ------------------------------------------------------------

    @staticmethod
    def estimate_cost(descriptor: ModelDescriptor, input_tokens: int, output_tokens: int) -> float:
        """Linear per-1k estimate; undefined costs count as zero."""
        input_cost = descriptor.cost_per_1k_input or 0.0
        output_cost = descriptor.cost_per_1k_output or 0.0
        return input_tokens / 1000 * input_cost + output_tokens / 1000 * output_cost

    def estimate_cost_for(self, model_id: str, input_tokens: int, output_tokens: int) -> float | None:
        descriptor = self.get(model_id)
        if descriptor is None:
            return None
        return self.estimate_cost(descriptor, input_tokens, output_tokens)

    @staticmethod
    def to_model_info(descriptor: ModelDescriptor) -> ModelInfo:
        return ModelInfo(
            id=descriptor.id,
            name=descriptor.name,
            description=descriptor.description,
            context_length=descriptor.context_length,
            max_output_tokens=descriptor.capabilities.max_output_tokens,
            supports_streaming=descriptor.capabilities.supports_streaming,
            supports_functions=descriptor.capabilities.supports_function_calling,
            cost_per_1k_input=descriptor.cost_per_1k_input,
            cost_per_1k_output=descriptor.cost_per_1k_output,
        )
