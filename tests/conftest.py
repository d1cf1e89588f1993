"""Fixtures and fakes shared by the unit and integration tests."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

import pytest

from provider_gateway.adapters.outbound.cache import MemoryStateStore
from provider_gateway.adapters.outbound.registry import StaticProviderRegistry
from provider_gateway.adapters.outbound.sinks import InMemoryEventSink
from provider_gateway.config import AiGatewaySettings, GatewaySettings
from provider_gateway.ports.outbound import ProviderExecutor
from provider_gateway.shared.providers.gateway import Gateway
from provider_gateway.shared.providers.types import ProviderMetadata, ProviderResponse


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records delays instead of waiting."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.delays: list[float] = []
        self._clock = clock

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self._clock is not None:
            self._clock.advance(delay)

    @property
    def total(self) -> float:
        return sum(self.delays)


class ScriptedExecutor(ProviderExecutor):
    """Executor that plays back a script of outcomes.

    Each entry is either an exception instance (raised) or a value
    (returned).  Once the script runs out, ``default`` is returned.
    """

    def __init__(self, code: str, script: Iterable[Any] = (), *, default: Any = None) -> None:
        self.code = code
        self._script = list(script)
        self._default = default if default is not None else {"output": f"ok:{code}"}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    async def execute(self, capability: str, payload: Mapping[str, Any]) -> Any:
        self.calls.append((capability, dict(payload)))
        if self._script:
            outcome = self._script.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        return self._default

    async def close(self) -> None:
        self.closed = True


class AlwaysFails(ScriptedExecutor):
    def __init__(self, code: str, error: Exception) -> None:
        super().__init__(code)
        self._error = error

    async def execute(self, capability: str, payload: Mapping[str, Any]) -> Any:
        self.calls.append((capability, dict(payload)))
        raise self._error


def make_registry(
    domain: str,
    executors: Mapping[str, ProviderExecutor],
    *,
    capabilities: Iterable[str] = (),
) -> StaticProviderRegistry:
    registry = StaticProviderRegistry()
    for priority, (code, executor) in enumerate(executors.items(), start=1):
        registry.register(
            ProviderMetadata(
                code=code,
                domain=domain,
                capabilities=frozenset(capabilities),
                priority=priority,
            ),
            executor,
        )
    return registry


# ═══════════════════════════════════════════════════════════════
#  Fixtures
# ═══════════════════════════════════════════════════════════════
@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep(clock: FakeClock) -> RecordingSleep:
    return RecordingSleep(clock)


@pytest.fixture
def store(clock: FakeClock) -> MemoryStateStore:
    return MemoryStateStore(clock=clock)


@pytest.fixture
def events() -> InMemoryEventSink:
    return InMemoryEventSink()


@pytest.fixture
def ai_settings() -> AiGatewaySettings:
    return AiGatewaySettings(
        fallback_order={"chat": ["openai", "anthropic", "gemini"]},
        cacheable_capabilities=["embedding"],
        call_timeout_seconds=5.0,
    )


@pytest.fixture
def build_gateway(store, events, clock, sleep):
    """Factory: ``build_gateway(settings, {"code": executor, ...})``."""

    def _build(
        settings: GatewaySettings,
        executors: Mapping[str, ProviderExecutor],
        *,
        capabilities: Iterable[str] = (),
        sink: Any = None,
    ) -> Gateway:
        registry = make_registry(settings.domain.value, executors, capabilities=capabilities)
        return Gateway(
            settings,
            registry=registry,
            store=store,
            sink=sink if sink is not None else events,
            clock=clock,
            sleep=sleep,
        )

    return _build


def ok(output: Any, **meta: Any) -> ProviderResponse:
    return ProviderResponse(output=output, meta=dict(meta))
