"""Provider configuration shapes and loader.

Configuration is consumed, never written: ``load_ai_config`` normalizes a YAML
document (or an already-parsed mapping) into :class:`AIConfig`, filling API
keys from the environment when the document leaves them out.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import ConfigurationError


class ProviderType(str, Enum):
    """Backend families the factory knows how to build."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OLLAMA = "ollama"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: "str | ProviderType") -> "ProviderType":
        if isinstance(value, ProviderType):
            return value
        normalized = str(value).strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        raise ConfigurationError(f"Unknown provider type: {value}")

    @property
    def display_name(self) -> str:
        return {"openai": "OpenAI", "anthropic": "Anthropic", "ollama": "Ollama"}[self.value]


@dataclass(slots=True)
class ModelConfig:
    """One model entry in a provider's configured model list."""

    name: str
    display_name: str
    description: str | None = None
    context_length: int | None = None
    max_output_tokens: int | None = None
    default_temperature: float | None = None
    supports_streaming: bool = True
    supports_functions: bool = False
    cost_per_1k_input_tokens: float | None = None
    cost_per_1k_output_tokens: float | None = None
    enabled: bool = True

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ModelConfig":
        if "name" not in raw:
            raise ConfigurationError("Model entry requires a name")
        name = str(raw["name"])

        def _opt_float(key: str) -> float | None:
            value = raw.get(key)
            return float(value) if value is not None else None

        def _opt_int(key: str) -> int | None:
            value = raw.get(key)
            return int(value) if value is not None else None

        return cls(
            name=name,
            display_name=str(raw.get("display_name", name)),
            description=raw.get("description"),
            context_length=_opt_int("context_length"),
            max_output_tokens=_opt_int("max_output_tokens"),
            default_temperature=_opt_float("default_temperature"),
            supports_streaming=bool(raw.get("supports_streaming", True)),
            supports_functions=bool(raw.get("supports_functions", False)),
            cost_per_1k_input_tokens=_opt_float("cost_per_1k_input_tokens"),
            cost_per_1k_output_tokens=_opt_float("cost_per_1k_output_tokens"),
            enabled=bool(raw.get("enabled", True)),
        )


def _hosted_model(
    name: str,
    display_name: str,
    description: str,
    context_length: int,
    max_output_tokens: int,
    cost_in: float,
    cost_out: float,
    *,
    functions: bool,
) -> ModelConfig:
    return ModelConfig(
        name=name,
        display_name=display_name,
        description=description,
        context_length=context_length,
        max_output_tokens=max_output_tokens,
        default_temperature=0.7,
        supports_streaming=True,
        supports_functions=functions,
        cost_per_1k_input_tokens=cost_in,
        cost_per_1k_output_tokens=cost_out,
    )


def _local_model(name: str, display_name: str, description: str, context_length: int = 8192) -> ModelConfig:
    return ModelConfig(
        name=name,
        display_name=display_name,
        description=description,
        context_length=context_length,
        max_output_tokens=2048,
        default_temperature=0.7,
        supports_streaming=True,
        supports_functions=False,
        cost_per_1k_input_tokens=0.0,
        cost_per_1k_output_tokens=0.0,
    )


@dataclass(slots=True)
class ProviderConfig:
    """Connection and model settings for a single backend."""

    provider_type: ProviderType
    enabled: bool = True
    api_key: str | None = None
    api_base_url: str | None = None
    organization: str | None = None
    project: str | None = None
    default_model: str = ""
    models: list[ModelConfig] = field(default_factory=list)
    timeout_seconds: float = 60.0
    max_retries: int = 3
    requests_per_minute: int | None = None
    tokens_per_minute: int | None = None
    custom_headers: dict[str, str] = field(default_factory=dict)
    verify_ssl: bool = True

    @classmethod
    def openai(cls, api_key: str | None) -> "ProviderConfig":
        return cls(
            provider_type=ProviderType.OPENAI,
            api_key=api_key,
            api_base_url="https://api.openai.com/v1",
            default_model="gpt-4o-mini",
            models=[
                _hosted_model("gpt-4o", "GPT-4o", "Flagship multimodal model", 128000, 4096, 0.0050, 0.0150, functions=True),
                _hosted_model(
                    "gpt-4o-mini", "GPT-4o mini", "Small, fast and affordable model", 128000, 16384, 0.00015, 0.00060,
                    functions=True,
                ),
                _hosted_model("gpt-4-turbo", "GPT-4 Turbo", "High-capability GPT-4 model", 128000, 4096, 0.01, 0.03, functions=True),
                _hosted_model(
                    "gpt-3.5-turbo", "GPT-3.5 Turbo", "Fast general purpose chat model", 16385, 4096, 0.001, 0.002,
                    functions=True,
                ),
            ],
            timeout_seconds=60.0,
            max_retries=3,
            requests_per_minute=10000,
            tokens_per_minute=2000000,
        )

    @classmethod
    def anthropic(cls, api_key: str | None) -> "ProviderConfig":
        return cls(
            provider_type=ProviderType.ANTHROPIC,
            api_key=api_key,
            api_base_url="https://api.anthropic.com",
            default_model="claude-3-5-sonnet-20241022",
            models=[
                _hosted_model(
                    "claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet", "Balanced intelligence and speed",
                    200000, 8192, 0.003, 0.015, functions=False,
                ),
                _hosted_model(
                    "claude-3-5-haiku-20241022", "Claude 3.5 Haiku", "Fastest Claude model",
                    200000, 8192, 0.0008, 0.004, functions=False,
                ),
                _hosted_model(
                    "claude-3-opus-20240229", "Claude 3 Opus", "Most capable Claude 3 model",
                    200000, 4096, 0.015, 0.075, functions=False,
                ),
            ],
            timeout_seconds=60.0,
            max_retries=3,
            requests_per_minute=4000,
            tokens_per_minute=400000,
        )

    @classmethod
    def ollama(cls, base_url: str | None = None) -> "ProviderConfig":
        return cls(
            provider_type=ProviderType.OLLAMA,
            api_base_url=base_url or "http://localhost:11434",
            default_model="llama3.2",
            models=[
                _local_model("llama3.2", "Llama 3.2", "Meta's general purpose open model"),
                _local_model("llama3.2:70b", "Llama 3.2 70B", "Large Llama 3.2 variant"),
                _local_model("mistral", "Mistral", "Mistral 7B instruct model"),
                _local_model("codellama", "Code Llama", "Llama tuned for code generation", context_length=16384),
            ],
            timeout_seconds=300.0,
            max_retries=2,
            verify_ssl=False,
        )

    @classmethod
    def preset(cls, provider_type: ProviderType | str) -> "ProviderConfig":
        """Stock configuration for a provider with keys taken from the environment."""
        kind = ProviderType.parse(provider_type)
        if kind is ProviderType.OPENAI:
            return cls.openai(os.getenv("OPENAI_API_KEY"))
        if kind is ProviderType.ANTHROPIC:
            return cls.anthropic(os.getenv("ANTHROPIC_API_KEY"))
        return cls.ollama(os.getenv("OLLAMA_HOST"))

    def get_model(self, name: str) -> ModelConfig | None:
        for model in self.models:
            if model.name == name:
                return model
        return None

    def enabled_models(self) -> list[ModelConfig]:
        return [model for model in self.models if model.enabled]

    def validate(self) -> None:
        """Raise ``ConfigurationError`` if the configuration cannot be used."""
        if not self.default_model:
            raise ConfigurationError("Default model cannot be empty")

        default = self.get_model(self.default_model)
        if default is None:
            raise ConfigurationError(f"Default model '{self.default_model}' not found in models list")
        if not default.enabled:
            raise ConfigurationError(f"Default model '{self.default_model}' is disabled")

        if self.provider_type in (ProviderType.OPENAI, ProviderType.ANTHROPIC):
            if not self.api_key:
                raise ConfigurationError(f"{self.provider_type.display_name} requires an API key")

        if self.provider_type is ProviderType.OLLAMA and not self.api_base_url:
            raise ConfigurationError("Ollama requires a base URL")

        if self.timeout_seconds <= 0:
            raise ConfigurationError("Timeout must be positive")


@dataclass(slots=True)
class AIConfig:
    """All configured providers plus the default selection."""

    default_provider: ProviderType = ProviderType.OLLAMA
    providers: dict[ProviderType, ProviderConfig] = field(default_factory=dict)
    global_timeout_seconds: float = 300.0
    enable_logging: bool = True
    log_level: str = "INFO"

    @classmethod
    def default(cls) -> "AIConfig":
        """Local runtime only, which needs no credentials."""
        return cls(providers={ProviderType.OLLAMA: ProviderConfig.ollama()})

    def add_provider(self, config: ProviderConfig) -> None:
        config.validate()
        self.providers[config.provider_type] = config

    def remove_provider(self, provider_type: ProviderType | str) -> None:
        kind = ProviderType.parse(provider_type)
        if kind is self.default_provider:
            raise ConfigurationError("Cannot remove the default provider")
        self.providers.pop(kind, None)

    def set_default_provider(self, provider_type: ProviderType | str) -> None:
        kind = ProviderType.parse(provider_type)
        if kind not in self.providers:
            raise ConfigurationError(f"Provider {kind} is not configured")
        self.default_provider = kind

    def get_provider_config(self, provider_type: ProviderType | str) -> ProviderConfig | None:
        return self.providers.get(ProviderType.parse(provider_type))

    def default_provider_config(self) -> ProviderConfig:
        config = self.providers.get(self.default_provider)
        if config is None:
            raise ConfigurationError(f"Default provider {self.default_provider} is not configured")
        return config

    def enabled_providers(self) -> list[ProviderType]:
        return [kind for kind, config in self.providers.items() if config.enabled]

    def validate(self) -> None:
        if self.default_provider not in self.providers:
            raise ConfigurationError(f"Default provider {self.default_provider} is not configured")
        if self.global_timeout_seconds <= 0:
            raise ConfigurationError("Global timeout must be positive")
        for config in self.providers.values():
            if config.enabled:
                config.validate()


_ENV_KEYS = {
    ProviderType.OPENAI: "OPENAI_API_KEY",
    ProviderType.ANTHROPIC: "ANTHROPIC_API_KEY",
}


def _normalize_provider(kind: ProviderType, entry: Mapping[str, Any]) -> ProviderConfig:
    if kind is ProviderType.OPENAI:
        config = ProviderConfig.openai(None)
    elif kind is ProviderType.ANTHROPIC:
        config = ProviderConfig.anthropic(None)
    else:
        config = ProviderConfig.ollama(entry.get("api_base_url") or os.getenv("OLLAMA_HOST"))

    config.enabled = bool(entry.get("enabled", True))
    config.api_key = entry.get("api_key") or (os.getenv(_ENV_KEYS[kind]) if kind in _ENV_KEYS else None)
    if entry.get("api_base_url"):
        config.api_base_url = str(entry["api_base_url"])
    config.organization = entry.get("organization")
    config.project = entry.get("project")

    if "models" in entry:
        config.models = [ModelConfig.from_dict(item) for item in entry["models"] or []]
    if entry.get("default_model"):
        config.default_model = str(entry["default_model"])

    if "timeout_seconds" in entry:
        config.timeout_seconds = float(entry["timeout_seconds"])
    if "max_retries" in entry:
        config.max_retries = int(entry["max_retries"])
    if "requests_per_minute" in entry:
        rpm = entry["requests_per_minute"]
        config.requests_per_minute = int(rpm) if rpm is not None else None
    if "tokens_per_minute" in entry:
        tpm = entry["tokens_per_minute"]
        config.tokens_per_minute = int(tpm) if tpm is not None else None
    config.custom_headers = {str(k): str(v) for k, v in (entry.get("custom_headers") or {}).items()}
    if "verify_ssl" in entry:
        config.verify_ssl = bool(entry["verify_ssl"])
    return config


def load_ai_config(*, config_path: Path | None = None, raw_config: Mapping[str, Any] | None = None) -> AIConfig:
    """Load and normalize provider config into :class:`AIConfig`.

    With neither argument the stock local-runtime configuration is returned.
    """
    if raw_config is None:
        if config_path is None:
            return AIConfig.default()
        raw_config = yaml.safe_load(config_path.read_text(encoding="utf-8"))

    if not isinstance(raw_config, Mapping):
        raise ConfigurationError("AI config must be a mapping")

    raw_providers = raw_config.get("providers") or {}
    if not isinstance(raw_providers, Mapping):
        raise ConfigurationError("'providers' must be a mapping of provider name to settings")

    providers: dict[ProviderType, ProviderConfig] = {}
    for name, entry in raw_providers.items():
        kind = ProviderType.parse(name)
        providers[kind] = _normalize_provider(kind, entry or {})

    if not providers:
        providers[ProviderType.OLLAMA] = ProviderConfig.ollama(os.getenv("OLLAMA_HOST"))

    default_raw = raw_config.get("default_provider")
    if default_raw is not None:
        default_provider = ProviderType.parse(default_raw)
    elif ProviderType.OLLAMA in providers:
        default_provider = ProviderType.OLLAMA
    else:
        default_provider = next(iter(providers))

    config = AIConfig(
        default_provider=default_provider,
        providers=providers,
        global_timeout_seconds=float(raw_config.get("global_timeout_seconds", 300.0)),
        enable_logging=bool(raw_config.get("enable_logging", True)),
        log_level=str(raw_config.get("log_level", "INFO")),
    )
    if default_provider not in providers:
        raise ConfigurationError(f"Default provider {default_provider} is not configured")
    return config
