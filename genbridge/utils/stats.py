"""Running request statistics owned by a single provider instance."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any

from .timeutil import utc_now


@dataclass(slots=True)
class GenerationStats:
    """Read-only snapshot of a provider's running statistics."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_tokens_used: int = 0
    total_cost: float | None = None
    average_response_time_ms: float = 0.0
    last_request_time: datetime | None = None
    provider_specific: dict[str, Any] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "total_tokens_used": self.total_tokens_used,
            "total_cost": round(self.total_cost, 8) if self.total_cost is not None else None,
            "average_response_time_ms": self.average_response_time_ms,
            "last_request_time": self.last_request_time.isoformat() if self.last_request_time else None,
            "success_rate": self.success_rate,
            "provider_specific": dict(self.provider_specific),
        }


class StatsAccumulator:
    """Serializes stat updates behind one lock and hands out snapshots."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._stats = GenerationStats()

    def record(
        self,
        *,
        success: bool,
        tokens: int = 0,
        response_time_ms: float = 0.0,
        cost: float | None = None,
    ) -> None:
        """Fold one finished request into the running totals."""
        with self._lock:
            stats = self._stats
            stats.total_requests += 1
            if success:
                stats.successful_requests += 1
            else:
                stats.failed_requests += 1
            stats.total_tokens_used += tokens

            if cost is not None:
                stats.total_cost = (stats.total_cost or 0.0) + cost

            # Incremental mean over all requests, failures included.
            previous_total = stats.average_response_time_ms * (stats.total_requests - 1)
            stats.average_response_time_ms = (previous_total + response_time_ms) / stats.total_requests
            stats.last_request_time = utc_now()

    def set_provider_value(self, key: str, value: Any) -> None:
        with self._lock:
            self._stats.provider_specific[key] = value

    def snapshot(self) -> GenerationStats:
        """Return an independent copy of the current totals."""
        with self._lock:
            current = self._stats
            return GenerationStats(
                total_requests=current.total_requests,
                successful_requests=current.successful_requests,
                failed_requests=current.failed_requests,
                total_tokens_used=current.total_tokens_used,
                total_cost=current.total_cost,
                average_response_time_ms=current.average_response_time_ms,
                last_request_time=current.last_request_time,
                provider_specific=dict(current.provider_specific),
            )
