"""Abstract async provider interface shared by every backend adapter."""

from __future__ import annotations

from abc import ABC, abstractmethod
import json
import logging
import time
from typing import Any, AsyncIterator, ClassVar

import httpx

from ..config import ModelConfig, ProviderConfig, ProviderType
from ..errors import (
    ConfigurationError,
    GenerationError,
    InvalidRequestError,
    ModelNotFoundError,
    ParsingError,
    StreamingError,
    default_error_message,
    map_http_status,
    map_transport_error,
)
from ..streaming import LineDecoder
from ..types import (
    GenerationRequest,
    GenerationResponse,
    ModelInfo,
    ProviderCapabilities,
    StreamEvent,
    StreamFinished,
    TokenUsage,
)
from ..utils.rate_limiter import AsyncRateLimiter
from ..utils.stats import GenerationStats, StatsAccumulator


USER_AGENT = "genbridge/0.1"

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class BaseProvider(ABC):
    """Base class for backend adapters.

    Owns one ``httpx.AsyncClient`` configured from the provider settings, a
    running stats accumulator and a per-instance rate limiter. Subclasses map
    requests to wire payloads and wire responses back; failures are
    classified, counted and re-raised, never retried.
    """

    provider_type: ClassVar[ProviderType]
    display_name: ClassVar[str]
    description: ClassVar[str]
    chat_path: ClassVar[str]
    # Whether get_models reflects what the backend actually serves.
    has_discovery: ClassVar[bool] = True

    def __init__(self, config: ProviderConfig, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        if not config.api_base_url:
            raise ConfigurationError(f"{self.display_name} requires a base URL")
        self.config = config
        self._stats = StatsAccumulator()
        self._rate_limiter = AsyncRateLimiter()
        # Streamed responses handed out but not yet closed, with their start time.
        self._open_streams: dict[httpx.Response, float] = {}

        headers = {"User-Agent": USER_AGENT, "Content-Type": "application/json"}
        headers.update(self._auth_headers())
        headers.update(config.custom_headers)

        self._client = httpx.AsyncClient(
            base_url=config.api_base_url,
            headers=headers,
            timeout=httpx.Timeout(config.timeout_seconds),
            verify=config.verify_ssl,
            transport=transport,
        )

    # -- subclass hooks -------------------------------------------------

    def _auth_headers(self) -> dict[str, str]:
        return {}

    @abstractmethod
    def _build_payload(self, request: GenerationRequest, *, stream: bool) -> dict[str, Any]:
        """Map a unified request to the backend's JSON body."""

    @abstractmethod
    def _parse_response(self, data: dict[str, Any], request: GenerationRequest, elapsed_ms: int) -> GenerationResponse:
        """Map a successful JSON body to a normalized response."""

    @abstractmethod
    def _new_decoder(self) -> LineDecoder:
        """Fresh per-connection stream decoder."""

    @abstractmethod
    async def _probe(self) -> None:
        """Minimal reachability call; raises on failure."""

    @abstractmethod
    async def get_models(self) -> list[ModelInfo]:
        """Models this backend offers."""

    @classmethod
    @abstractmethod
    def capabilities(cls) -> ProviderCapabilities:
        """Static feature and rate-limit hints for this adapter type."""

    def _extract_error_message(self, body: str) -> str | None:
        return default_error_message(body)

    # -- shared helpers --------------------------------------------------

    @staticmethod
    def _checked_api_key(api_key: str | None) -> str:
        if not api_key:
            raise ConfigurationError("API key is required")
        if any(not ch.isprintable() or ch.isspace() for ch in api_key):
            raise ConfigurationError("Invalid API key format")
        return api_key

    def _raise_for_status(self, response: httpx.Response, body: str) -> None:
        if response.is_success:
            return
        raise map_http_status(
            response.status_code,
            body,
            provider=self.display_name,
            headers=response.headers,
            message_extractor=self._extract_error_message,
        )

    async def _request(self, method: str, path: str, *, json_body: dict[str, Any] | None = None) -> httpx.Response:
        """Issue one buffered request and map transport and status failures."""
        try:
            response = await self._client.request(method, path, json=json_body)
        except httpx.TransportError as exc:
            raise map_transport_error(exc, provider=self.display_name) from exc
        self._raise_for_status(response, response.text)
        return response

    def _decode_json(self, response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ParsingError(f"Failed to parse {self.display_name} response: {exc}") from exc
        if not isinstance(data, dict):
            raise ParsingError(f"Unexpected {self.display_name} response shape: {type(data).__name__}")
        return data

    def _model_info(self, model: ModelConfig) -> ModelInfo:
        return ModelInfo(
            id=model.name,
            name=model.display_name,
            description=model.description,
            context_length=model.context_length,
            max_output_tokens=model.max_output_tokens,
            supports_streaming=model.supports_streaming,
            supports_functions=model.supports_functions,
            cost_per_1k_input=model.cost_per_1k_input_tokens,
            cost_per_1k_output=model.cost_per_1k_output_tokens,
        )

    def _record_success(self, started: float, model: str, usage: TokenUsage | None) -> None:
        tokens = usage.total_tokens if usage else 0
        cost = self.estimate_cost(usage.prompt_tokens, usage.completion_tokens, model) if usage else None
        self._stats.record(success=True, tokens=tokens, response_time_ms=_elapsed_ms(started), cost=cost)

    def _record_failure(self, started: float, exc: GenerationError) -> None:
        self._stats.record(success=False, response_time_ms=_elapsed_ms(started))
        logger.warning("%s request failed [%s]: %s", self.display_name, exc.category, exc.message)

    # -- provider contract -----------------------------------------------

    @property
    def default_model(self) -> str:
        return self.config.default_model

    def validate_model(self, model: str) -> None:
        """Reject empty names and configured-but-disabled models."""
        if not model or not model.strip():
            raise InvalidRequestError("Model name cannot be empty")
        configured = self.config.get_model(model)
        if configured is not None and not configured.enabled:
            raise ModelNotFoundError(f"Model '{model}' is disabled")

    def supports_streaming(self) -> bool:
        return self.capabilities().supports_streaming

    def supports_functions(self) -> bool:
        return self.capabilities().supports_functions

    def estimate_cost(self, prompt_tokens: int, completion_tokens: int, model: str) -> float | None:
        """Linear per-1k estimate from the configured model list, ``None`` if unknown."""
        configured = self.config.get_model(model)
        if configured is None:
            return None
        if configured.cost_per_1k_input_tokens is None or configured.cost_per_1k_output_tokens is None:
            return None
        return (
            prompt_tokens / 1000 * configured.cost_per_1k_input_tokens
            + completion_tokens / 1000 * configured.cost_per_1k_output_tokens
        )

    def stats(self) -> GenerationStats:
        return self._stats.snapshot()

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        """Send one non-streaming request and return the normalized response."""
        started = time.perf_counter()
        try:
            self.validate_model(request.model)
            payload = self._build_payload(request, stream=False)
            await self._rate_limiter.acquire(self.provider_type.value, self.config.requests_per_minute)
            response = await self._request("POST", self.chat_path, json_body=payload)
            data = self._decode_json(response)
            try:
                result = self._parse_response(data, request, _elapsed_ms(started))
            except (KeyError, IndexError, TypeError, ValueError) as exc:
                raise ParsingError(f"Malformed {self.display_name} response: {exc!r}") from exc
        except GenerationError as exc:
            self._record_failure(started, exc)
            raise

        self._record_success(started, request.model, result.usage)
        return result

    async def generate_stream(self, request: GenerationRequest) -> AsyncIterator[StreamEvent]:
        """Open a streamed request and return its event iterator.

        Status failures are raised here, before any event is produced. The
        returned iterator yields zero or more chunks and exactly one
        ``StreamFinished``.
        """
        started = time.perf_counter()
        try:
            self.validate_model(request.model)
            payload = self._build_payload(request, stream=True)
            await self._rate_limiter.acquire(self.provider_type.value, self.config.requests_per_minute)
            http_request = self._client.build_request("POST", self.chat_path, json=payload)
            try:
                response = await self._client.send(http_request, stream=True)
            except httpx.TransportError as exc:
                raise map_transport_error(exc, provider=self.display_name) from exc
            if not response.is_success:
                try:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                finally:
                    await response.aclose()
                self._raise_for_status(response, body)
        except GenerationError as exc:
            self._record_failure(started, exc)
            raise

        self._open_streams[response] = started
        return self._iter_events(response, self._new_decoder(), started, request.model)

    async def _iter_events(
        self,
        response: httpx.Response,
        decoder: LineDecoder,
        started: float,
        model: str,
    ) -> AsyncIterator[StreamEvent]:
        try:
            try:
                async for raw in response.aiter_bytes():
                    for event in decoder.feed(raw):
                        if isinstance(event, StreamFinished):
                            self._record_success(started, model, event.usage)
                        yield event
                    if decoder.finished:
                        break
                if not decoder.finished:
                    for event in decoder.close():
                        if isinstance(event, StreamFinished):
                            self._record_success(started, model, event.usage)
                        yield event
            except httpx.TransportError as exc:
                raise StreamingError(f"{self.display_name} stream interrupted: {exc}") from exc
        except GenerationError as exc:
            self._record_failure(started, exc)
            raise
        finally:
            self._open_streams.pop(response, None)
            await response.aclose()

    async def health_check(self) -> bool:
        """Report reachability; never raises."""
        try:
            await self._probe()
        except Exception as exc:
            logger.info("%s health check failed: %s", self.display_name, exc)
            return False
        return True

    async def close(self) -> None:
        # Handles dropped before iteration never reach their finally block.
        for response, started in list(self._open_streams.items()):
            self._record_failure(started, StreamingError(f"{self.display_name} stream closed before it was consumed"))
            await response.aclose()
        self._open_streams.clear()
        await self._client.aclose()

    async def __aenter__(self) -> "BaseProvider":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
