"""Orchestrator holding the hot-swappable active provider."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable

from .catalog import ModelDescriptor, ModelRegistry, SelectionCriteria, UseCase
from .config import AIConfig, ProviderConfig, ProviderType
from .errors import ConfigurationError, GenerationError, ProviderNotInitializedError
from .providers import BaseProvider, create_provider, provider_class
from .types import (
    GenerationParams,
    GenerationRequest,
    GenerationResponse,
    ModelInfo,
    ProviderCapabilities,
    StreamEvent,
)
from .utils.locks import AsyncRWLock
from .utils.rate_limiter import retry_with_backoff
from .utils.stats import GenerationStats


ProviderFactory = Callable[[ProviderType, ProviderConfig], Awaitable[BaseProvider]]


class ProviderManager:
    """Routes requests to one active provider and ties it to the registry.

    The active provider sits in a single slot behind a reader/writer lock.
    Replacements are fully built (health check included) before the write
    lock is taken, so a failed switch leaves the current provider in place.
    Replaced providers are kept open until :meth:`close` because in-flight
    calls and streams may still be using them.
    """

    def __init__(
        self,
        registry: ModelRegistry | None = None,
        *,
        logger: logging.Logger | None = None,
        provider_factory: ProviderFactory | None = None,
    ) -> None:
        self.registry = registry if registry is not None else ModelRegistry()
        self.logger = logger or logging.getLogger(__name__)
        self._provider_factory: ProviderFactory = provider_factory or create_provider
        self._lock = AsyncRWLock()
        self._provider: BaseProvider | None = None
        self._retired: list[BaseProvider] = []
        self._config: AIConfig | None = None

    # -- slot management -------------------------------------------------

    async def initialize(self, config: AIConfig) -> None:
        """Adopt ``config`` and activate its default provider."""
        config.validate()
        self._config = config
        await self.switch_provider(config.default_provider)

    def _provider_config(self, provider_type: ProviderType) -> ProviderConfig:
        if self._config is None:
            raise ProviderNotInitializedError("Manager has no configuration; call initialize() first")
        provider_config = self._config.get_provider_config(provider_type)
        if provider_config is None:
            raise ConfigurationError(f"Provider {provider_type} is not configured")
        if not provider_config.enabled:
            raise ConfigurationError(f"Provider {provider_type} is disabled")
        return provider_config

    async def switch_provider(self, provider_type: ProviderType | str) -> None:
        kind = ProviderType.parse(provider_type)
        provider = await self._provider_factory(kind, self._provider_config(kind))

        async with self._lock.write():
            previous = self._provider
            self._provider = provider
            if previous is not None:
                self._retired.append(previous)

        self.logger.info(
            "Switched active provider %s -> %s",
            previous.provider_type if previous is not None else "none",
            kind,
        )

    async def _current(self) -> BaseProvider:
        async with self._lock.read():
            if self._provider is None:
                raise ProviderNotInitializedError()
            return self._provider

    @property
    def active_provider_type(self) -> ProviderType | None:
        return self._provider.provider_type if self._provider is not None else None

    async def close(self) -> None:
        """Close the active provider and every provider it replaced."""
        async with self._lock.write():
            providers = [*self._retired]
            if self._provider is not None:
                providers.append(self._provider)
            self._provider = None
            self._retired.clear()
        await asyncio.gather(*[provider.close() for provider in providers])

    async def __aenter__(self) -> "ProviderManager":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # -- delegation ------------------------------------------------------

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        provider = await self._current()
        return await provider.generate(request)

    async def generate_stream(self, request: GenerationRequest) -> AsyncIterator[StreamEvent]:
        provider = await self._current()
        return await provider.generate_stream(request)

    async def generate_with_retry(self, request: GenerationRequest, max_retries: int | None = None) -> GenerationResponse:
        """``generate`` wrapped in exponential backoff for retryable errors.

        Defaults to the active provider's configured ``max_retries``.
        """
        if max_retries is None:
            max_retries = (await self._current()).config.max_retries
        return await retry_with_backoff(lambda: self.generate(request), max_retries=max_retries)

    async def get_available_models(self) -> list[ModelInfo]:
        provider = await self._current()
        return await provider.get_models()

    async def stats(self) -> GenerationStats:
        provider = await self._current()
        return provider.stats()

    async def validate_provider(self, provider_type: ProviderType | str) -> bool:
        """Build a throwaway provider and health-check it."""
        kind = ProviderType.parse(provider_type)
        if self._config is not None and self._config.get_provider_config(kind) is not None:
            provider_config = self._config.get_provider_config(kind)
        else:
            provider_config = ProviderConfig.preset(kind)

        try:
            provider = await self._provider_factory(kind, provider_config)
        except GenerationError as exc:
            self.logger.warning("Provider %s failed validation: %s", kind, exc.message)
            return False
        try:
            return await provider.health_check()
        finally:
            await provider.close()

    def provider_capabilities(self, provider_type: ProviderType | str) -> ProviderCapabilities:
        return provider_class(provider_type).capabilities()

    # -- registry pass-throughs -----------------------------------------

    def select_best_model(self, criteria: SelectionCriteria) -> ModelDescriptor:
        return self.registry.select_best(criteria)

    def recommended_models(self, use_case: UseCase) -> list[ModelDescriptor]:
        return self.registry.recommended_for(use_case)

    def validate_model_parameters(self, model_id: str, params: GenerationParams) -> None:
        self.registry.validate_parameters(model_id, params)

    def adjust_model_parameters(self, model_id: str, params: GenerationParams) -> GenerationParams:
        return self.registry.adjust_parameters(model_id, params)

    def estimate_generation_cost(self, model_id: str, input_tokens: int, output_tokens: int) -> float | None:
        return self.registry.estimate_cost_for(model_id, input_tokens, output_tokens)

    def update_model_availability(self, model_id: str, available: bool) -> None:
        self.registry.set_availability(model_id, available)

    async def refresh_model_availability(self) -> dict[str, bool]:
        """Probe the active provider and mirror what it serves into the registry.

        Providers without real discovery leave the registry untouched.
        """
        provider = await self._current()
        if not provider.has_discovery:
            return {
                descriptor.id: descriptor.available
                for descriptor in self.registry.all_models()
                if descriptor.provider is provider.provider_type
            }

        models = await provider.get_models()
        availability = self.registry.sync_availability(provider.provider_type, [model.id for model in models])
        self.logger.info(
            "Refreshed %s model availability: %d of %d present",
            provider.provider_type,
            sum(availability.values()),
            len(availability),
        )
        return availability

    async def generate_with_auto_model(self, request: GenerationRequest, criteria: SelectionCriteria) -> GenerationResponse:
        """Select a model, clamp parameters, switch provider if needed, generate."""
        descriptor = self.registry.select_best(criteria)
        params = self.registry.adjust_parameters(descriptor.id, request.params)
        routed = request.with_model(descriptor.api_model).with_params(params).with_metadata("registry_model", descriptor.id)

        if self.active_provider_type is not descriptor.provider:
            await self.switch_provider(descriptor.provider)

        self.logger.info("Auto-selected model %s (%s)", descriptor.id, descriptor.provider)
        return await self.generate(routed)
