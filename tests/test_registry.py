"""Tests for the provider registry and health-aware manager."""

import asyncio
import threading
from datetime import timedelta

import pytest

from pix_gateway.engine import retry
from pix_gateway.models.enums import HealthStatus
from pix_gateway.models.provider import ProviderConfig
from pix_gateway.providers.errors import ErrorCode, ProviderError
from pix_gateway.providers import manager as manager_module
from pix_gateway.providers.manager import HealthRecord, ProviderManager
from pix_gateway.providers.mock_provider import MockPixProvider
from pix_gateway.providers.registry import ProviderRegistry
from pix_gateway.providers.wire import utcnow


class NamedProvider(MockPixProvider):
    def __init__(self, code: str):
        super().__init__(failure_rate=0.0, latency_ms=0)
        self._code = code
        self.initialize(ProviderConfig(base_url="memory://", auth_url="memory://token"))

    @property
    def code(self) -> str:
        return self._code


def build(*specs):
    """specs: (code, priority) pairs, registered in order."""
    registry = ProviderRegistry()
    providers = {}
    for code, priority in specs:
        providers[code] = NamedProvider(code)
        registry.register(providers[code], priority=priority)
    return registry, providers


class RecordingSink:
    def __init__(self):
        self.records = []

    async def record(self, code, record):
        self.records.append((code, record))


class TestRegistry:
    def test_lookup(self):
        registry, providers = build(("itau", 0), ("bradesco", 0))
        assert registry.get("itau") is providers["itau"]
        assert registry.get("nubank") is None
        assert "itau" in registry
        assert "nubank" not in registry
        assert len(registry) == 2

    def test_registration_order(self):
        registry, _ = build(("c", 0), ("a", 5), ("b", 1))
        assert list(registry.get_all()) == ["c", "a", "b"]

    def test_replace_keeps_position(self):
        registry, _ = build(("a", 0), ("b", 0), ("c", 0))
        replacement = NamedProvider("a")
        registry.register(replacement, priority=7)
        assert list(registry.get_all()) == ["a", "b", "c"]
        assert registry.get("a") is replacement
        assert registry.priority("a") == 7

    def test_view_is_read_only(self):
        registry, _ = build(("a", 0))
        with pytest.raises(TypeError):
            registry.get_all()["b"] = NamedProvider("b")

    def test_concurrent_registration(self):
        registry = ProviderRegistry()
        threads = [
            threading.Thread(target=registry.register, args=(NamedProvider(f"p{i}"),)) for i in range(50)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(registry) == 50


class TestSelection:
    def test_higher_priority_unhealthy_is_skipped(self):
        registry, providers = build(("a", 10), ("b", 5))
        manager = ProviderManager(registry)
        manager.record_health("a", False, "HEALTH_CHECK_FAILED")
        manager.record_health("b", True)
        assert manager.get_healthy_provider() is providers["b"]

    def test_priority_then_registration_order(self):
        registry, providers = build(("a", 1), ("b", 5), ("c", 5), ("d", 0))
        manager = ProviderManager(registry)
        for code in "abcd":
            manager.record_health(code, True)
        assert [p.code for p in manager.candidates()] == ["b", "c", "a", "d"]

    def test_preferred_first_when_healthy(self):
        registry, _ = build(("a", 10), ("b", 5))
        manager = ProviderManager(registry)
        manager.record_health("a", True)
        manager.record_health("b", True)
        assert manager.get_healthy_provider(preferred="b").code == "b"

    def test_unhealthy_preferred_is_ignored(self):
        registry, _ = build(("a", 10), ("b", 5))
        manager = ProviderManager(registry)
        manager.record_health("a", True)
        manager.record_health("b", False)
        assert manager.get_healthy_provider(preferred="b").code == "a"

    def test_allowed_restricts_candidates(self):
        registry, _ = build(("a", 10), ("b", 5), ("c", 1))
        manager = ProviderManager(registry)
        for code in "abc":
            manager.record_health(code, True)
        assert [p.code for p in manager.candidates(allowed=["c", "b"])] == ["b", "c"]

    def test_never_checked_is_not_healthy(self):
        registry, _ = build(("a", 0))
        manager = ProviderManager(registry)
        assert manager.health("a").status == HealthStatus.UNKNOWN
        assert not manager.is_healthy("a")

    def test_stale_record_is_not_healthy(self):
        registry, _ = build(("a", 0))
        manager = ProviderManager(registry, freshness_seconds=60)
        manager._health["a"] = HealthRecord(HealthStatus.HEALTHY, utcnow() - timedelta(seconds=120))
        assert not manager.is_healthy("a")

    def test_no_healthy_provider(self):
        registry, _ = build(("a", 0))
        manager = ProviderManager(registry)
        with pytest.raises(ProviderError) as exc:
            manager.get_healthy_provider()
        assert exc.value.code == ErrorCode.NO_HEALTHY_PROVIDER
        assert exc.value.retryable is True


class TestCheckHealth:
    @pytest.mark.asyncio
    async def test_records_results_and_forwards_to_sink(self):
        registry, providers = build(("a", 0), ("b", 0))
        providers["b"].healthy = False
        sink = RecordingSink()
        manager = ProviderManager(registry, sink=sink)

        records = await manager.check_health()

        assert records["a"].status == HealthStatus.HEALTHY
        assert records["b"].status == HealthStatus.UNHEALTHY
        assert "HEALTH_CHECK_FAILED" in records["b"].error
        assert manager.is_healthy("a") and not manager.is_healthy("b")
        assert sorted(code for code, _ in sink.records) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_subset(self):
        registry, _ = build(("a", 0), ("b", 0))
        manager = ProviderManager(registry)
        records = await manager.check_health(["b", "unknown"])
        assert list(records) == ["b"]


class TestFallback:
    @pytest.mark.asyncio
    async def test_retryable_failure_falls_back_and_marks_unhealthy(self):
        registry, _ = build(("a", 10), ("b", 5))
        manager = ProviderManager(registry)
        manager.record_health("a", True)
        manager.record_health("b", True)

        async def operation(provider):
            if provider.code == "a":
                raise ProviderError(ErrorCode.TRANSFER_ERROR, "timeout", retryable=True)
            return provider.code

        assert await manager.execute_with_fallback(operation) == "b"
        assert not manager.is_healthy("a")

    @pytest.mark.asyncio
    async def test_non_retryable_failure_falls_back_without_marking(self):
        registry, _ = build(("a", 10), ("b", 5))
        manager = ProviderManager(registry)
        manager.record_health("a", True)
        manager.record_health("b", True)

        async def operation(provider):
            if provider.code == "a":
                raise ProviderError(ErrorCode.NOT_SUPPORTED, "no static QR")
            return provider.code

        assert await manager.execute_with_fallback(operation) == "b"
        assert manager.is_healthy("a")

    @pytest.mark.asyncio
    async def test_other_exceptions_propagate(self):
        registry, _ = build(("a", 10), ("b", 5))
        manager = ProviderManager(registry)
        manager.record_health("a", True)
        manager.record_health("b", True)
        called = []

        async def operation(provider):
            called.append(provider.code)
            raise KeyError("bug")

        with pytest.raises(KeyError):
            await manager.execute_with_fallback(operation)
        assert called == ["a"]

    @pytest.mark.asyncio
    async def test_all_fail_raises_last_error(self):
        registry, _ = build(("a", 10), ("b", 5))
        manager = ProviderManager(registry)
        manager.record_health("a", True)
        manager.record_health("b", True)

        async def operation(provider):
            raise ProviderError(ErrorCode.TRANSFER_FAILED, f"{provider.code} said no", status_code=422)

        with pytest.raises(ProviderError) as exc:
            await manager.execute_with_fallback(operation)
        assert exc.value.message == "b said no"

    @pytest.mark.asyncio
    async def test_nothing_healthy(self):
        registry, _ = build(("a", 0))
        manager = ProviderManager(registry)

        async def operation(provider):
            return provider.code

        with pytest.raises(ProviderError) as exc:
            await manager.execute_with_fallback(operation)
        assert exc.value.code == ErrorCode.NO_HEALTHY_PROVIDER

    @pytest.mark.asyncio
    async def test_retry_budget_retries_in_place(self, monkeypatch):
        async def no_sleep(seconds):
            pass

        monkeypatch.setattr(retry.asyncio, "sleep", no_sleep)
        registry, _ = build(("a", 10), ("b", 5))
        manager = ProviderManager(registry, max_retries={"a": 2})
        manager.record_health("a", True)
        manager.record_health("b", True)
        calls = []

        async def operation(provider):
            calls.append(provider.code)
            if provider.code == "a" and calls.count("a") < 3:
                raise ProviderError(ErrorCode.TRANSFER_ERROR, "timeout", retryable=True)
            return provider.code

        assert await manager.execute_with_fallback(operation) == "a"
        assert calls == ["a", "a", "a"]
        assert manager.is_healthy("a")

    @pytest.mark.asyncio
    async def test_exhausted_retry_budget_falls_back(self, monkeypatch):
        async def no_sleep(seconds):
            pass

        monkeypatch.setattr(retry.asyncio, "sleep", no_sleep)
        registry, _ = build(("a", 10), ("b", 5))
        manager = ProviderManager(registry, max_retries={"a": 1, "b": 1})
        manager.record_health("a", True)
        manager.record_health("b", True)
        calls = []

        async def operation(provider):
            calls.append(provider.code)
            if provider.code == "a":
                raise ProviderError(ErrorCode.TRANSFER_ERROR, "timeout", retryable=True)
            return provider.code

        assert await manager.execute_with_fallback(operation) == "b"
        assert calls == ["a", "a", "b"]
        assert not manager.is_healthy("a")


class TestHealthRefresh:
    @pytest.mark.asyncio
    async def test_refresh_loop_rechecks_until_cancelled(self):
        registry, providers = build(("a", 0))
        sink = RecordingSink()
        manager = ProviderManager(registry, freshness_seconds=1, sink=sink)

        task = asyncio.create_task(manager.run_health_checks(0.01))
        await asyncio.sleep(0.1)
        assert manager.is_healthy("a")
        providers["a"].healthy = False
        await asyncio.sleep(0.1)
        assert manager.health("a").status == HealthStatus.UNHEALTHY

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(sink.records) >= 2

    @pytest.mark.asyncio
    async def test_interval_stays_inside_freshness_window(self, monkeypatch):
        slept = []

        class Stop(Exception):
            pass

        async def fake_sleep(seconds):
            slept.append(seconds)
            raise Stop

        registry, _ = build(("a", 0))
        manager = ProviderManager(registry, freshness_seconds=60)
        monkeypatch.setattr(manager_module.asyncio, "sleep", fake_sleep)
        with pytest.raises(Stop):
            await manager.run_health_checks(600)
        assert slept == [30.0]
