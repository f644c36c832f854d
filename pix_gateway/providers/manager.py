"""
Health-aware provider selection.

The manager keeps one ``HealthRecord`` per adapter and uses it to pick an
adapter for a call:

  1. The caller's preferred code, if that adapter is healthy
  2. Other healthy adapters by descending priority
  3. Ties broken by registration order

An adapter counts as healthy only if its last check succeeded within the
freshness window. ``execute_with_fallback`` walks that list until one
adapter succeeds.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol, TypeVar

from pix_gateway.engine import retry
from pix_gateway.models.enums import HealthStatus
from pix_gateway.providers.base import PixProvider
from pix_gateway.providers.errors import ErrorCode, ProviderError
from pix_gateway.providers.registry import ProviderRegistry
from pix_gateway.providers.wire import utcnow

logger = logging.getLogger("pix_gateway.manager")

T = TypeVar("T")

DEFAULT_FRESHNESS_SECONDS = 60


@dataclass(frozen=True)
class HealthRecord:
    status: HealthStatus = HealthStatus.UNKNOWN
    checked_at: Optional[datetime] = None
    error: str = ""


class HealthSink(Protocol):
    """Persistence collaborator for provider health (status, last checked)."""

    async def record(self, code: str, record: HealthRecord) -> None:
        ...


class ProviderManager:
    def __init__(
        self,
        registry: ProviderRegistry,
        freshness_seconds: int = DEFAULT_FRESHNESS_SECONDS,
        sink: Optional[HealthSink] = None,
        max_retries: Optional[Mapping[str, int]] = None,
    ):
        self._registry = registry
        self._freshness = timedelta(seconds=freshness_seconds)
        self._sink = sink
        self._health: dict[str, HealthRecord] = {}
        self._max_retries = dict(max_retries or {})

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    def health(self, code: str) -> HealthRecord:
        return self._health.get(code, HealthRecord())

    def record_health(self, code: str, healthy: bool, error: Optional[str] = None) -> HealthRecord:
        record = HealthRecord(
            status=HealthStatus.HEALTHY if healthy else HealthStatus.UNHEALTHY,
            checked_at=utcnow(),
            error=error or "",
        )
        self._health[code] = record
        return record

    def is_healthy(self, code: str) -> bool:
        record = self._health.get(code)
        if record is None or record.status != HealthStatus.HEALTHY or record.checked_at is None:
            return False
        return utcnow() - record.checked_at <= self._freshness

    async def _check_one(self, code: str, provider: PixProvider) -> HealthRecord:
        try:
            await provider.health_check()
        except ProviderError as e:
            logger.warning("Health check failed for %s: %s (%s)", code, e.code, e.message)
            record = self.record_health(code, False, f"{e.code}: {e.message}")
        else:
            record = self.record_health(code, True)

        if self._sink is not None:
            await self._sink.record(code, record)
        return record

    async def check_health(self, codes: Optional[Iterable[str]] = None) -> dict[str, HealthRecord]:
        """Probe adapters concurrently and record the results."""
        providers = self._registry.get_all()
        selected = list(providers) if codes is None else [c for c in codes if c in providers]
        records = await asyncio.gather(*(self._check_one(code, providers[code]) for code in selected))
        return dict(zip(selected, records))

    async def run_health_checks(self, interval: Optional[float] = None) -> None:
        """
        Re-check every adapter until cancelled.

        ``interval`` defaults to half the freshness window and is capped
        below it, so a healthy adapter never goes stale between rounds.
        """
        window = self._freshness.total_seconds()
        if not interval or interval >= window:
            interval = window / 2
        while True:
            await asyncio.sleep(interval)
            try:
                await self.check_health()
            except Exception:
                logger.exception("Health refresh round failed")

    def candidates(
        self,
        preferred: Optional[str] = None,
        allowed: Optional[Iterable[str]] = None,
    ) -> list[PixProvider]:
        providers = self._registry.get_all()
        allowed_set = set(allowed) if allowed is not None else None

        order = {code: i for i, code in enumerate(providers)}
        healthy = [
            code
            for code in providers
            if self.is_healthy(code) and (allowed_set is None or code in allowed_set)
        ]
        healthy.sort(key=lambda code: (code != preferred, -self._registry.priority(code), order[code]))
        return [providers[code] for code in healthy]

    def get_healthy_provider(
        self,
        preferred: Optional[str] = None,
        allowed: Optional[Iterable[str]] = None,
    ) -> PixProvider:
        """
        Raises:
            ProviderError: NO_HEALTHY_PROVIDER (retryable) when none qualifies.
        """
        found = self.candidates(preferred, allowed)
        if not found:
            raise ProviderError(ErrorCode.NO_HEALTHY_PROVIDER, "No healthy provider available", retryable=True)
        return found[0]

    async def execute_with_fallback(
        self,
        operation: Callable[[PixProvider], Awaitable[T]],
        preferred: Optional[str] = None,
        allowed: Optional[Iterable[str]] = None,
    ) -> T:
        """
        Run ``operation`` on successive candidates until one succeeds.

        A ``ProviderError`` moves on to the next candidate; a retryable one
        also marks that adapter unhealthy. Any other exception propagates
        immediately.
        Adapters with a retry budget (``max_retries``) are retried in place
        before the next candidate is tried.

        Raises:
            ProviderError: The last adapter's error, or NO_HEALTHY_PROVIDER.
        """
        found = self.candidates(preferred, allowed)
        if not found:
            raise ProviderError(ErrorCode.NO_HEALTHY_PROVIDER, "No healthy provider available", retryable=True)

        last_error: Optional[ProviderError] = None
        for provider in found:
            try:
                retries = self._max_retries.get(provider.code, 0)
                if retries > 0:
                    return await retry.with_retry(operation, provider, max_retries=retries)
                return await operation(provider)
            except ProviderError as e:
                last_error = e
                if e.retryable:
                    self.record_health(provider.code, False, f"{e.code}: {e.message}")
                logger.warning(
                    "Provider %s failed (%s, retryable=%s); trying next candidate",
                    provider.code,
                    e.code,
                    e.retryable,
                )

        raise last_error or ProviderError(ErrorCode.NO_HEALTHY_PROVIDER, "No healthy provider available", retryable=True)
