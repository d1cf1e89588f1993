"""Provider selector — picks the provider for a capability.

Each capability has an ordered fallback chain.  Selection walks the chain
and takes the first provider that is both discovered and healthy, then
falls back to the default provider, and finally to any healthy provider
(by priority, preferring those that advertise the capability).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

import structlog

from provider_gateway.domain.exceptions import NoHealthyProviderError
from provider_gateway.shared.providers.circuit_breaker import CircuitBreaker
from provider_gateway.shared.providers.types import ProviderMetadata

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Selection:
    """Provider chosen for a capability.

    ``bypassed`` is the first chain entry skipped because it was unhealthy,
    or ``None`` when nothing in front of ``provider`` was skipped for health.
    """

    provider: str
    bypassed: str | None = None


class ProviderSelector:
    """Chooses providers from the discovered set using the breaker's view of health."""

    def __init__(
        self,
        breaker: CircuitBreaker,
        *,
        default_provider: str,
        fallback_order: Mapping[str, Sequence[str]] | None = None,
        providers: Mapping[str, ProviderMetadata] | None = None,
    ) -> None:
        self._breaker = breaker
        self._default = default_provider
        self._chains: dict[str, list[str]] = {
            cap: list(codes) for cap, codes in (fallback_order or {}).items()
        }
        self._providers: dict[str, ProviderMetadata] = dict(providers or {})

    @property
    def default_provider(self) -> str:
        return self._default

    @property
    def fallback_order(self) -> dict[str, list[str]]:
        return {cap: list(codes) for cap, codes in self._chains.items()}

    # ── Mutation ─────────────────────────────────────────────
    def update_providers(self, providers: Mapping[str, ProviderMetadata]) -> None:
        self._providers = dict(providers)

    def set_default_provider(self, code: str) -> None:
        self._default = code
        logger.info("default_provider_changed", provider=code)

    def set_fallback_order(self, capability: str, codes: Iterable[str]) -> None:
        chain: list[str] = []
        for code in codes:
            if code not in chain:
                chain.append(code)
        self._chains[capability] = chain
        logger.info("fallback_order_changed", capability=capability, chain=chain)

    # ── Queries ──────────────────────────────────────────────
    def fallback_chain(self, capability: str) -> list[str]:
        return list(self._chains.get(capability, []))

    def next(self, capability: str, failed_code: str) -> str | None:
        """The chain entry right after ``failed_code``, if any."""
        chain = self._chains.get(capability, [])
        try:
            idx = chain.index(failed_code)
        except ValueError:
            return None
        return chain[idx + 1] if idx + 1 < len(chain) else None

    async def select_for(self, capability: str) -> str:
        return (await self.resolve(capability)).provider

    async def resolve(self, capability: str) -> Selection:
        """Pick a provider for ``capability``.

        Raises:
            NoHealthyProviderError: if no discovered provider is healthy.
        """
        bypassed: str | None = None
        for code in self._chains.get(capability, []):
            if code not in self._providers:
                continue
            if await self._breaker.is_healthy(code):
                return Selection(code, bypassed)
            logger.debug("provider_circuit_open", provider=code, capability=capability)
            if bypassed is None:
                bypassed = code

        if self._default in self._providers and await self._breaker.is_healthy(self._default):
            return Selection(self._default, bypassed)

        for meta in self._ranked(capability):
            if await self._breaker.is_healthy(meta.code):
                return Selection(meta.code, bypassed)

        logger.warning(
            "no_available_providers",
            capability=capability,
            total_discovered=len(self._providers),
        )
        raise NoHealthyProviderError(capability)

    def _ranked(self, capability: str) -> list[ProviderMetadata]:
        return sorted(
            self._providers.values(),
            key=lambda m: (not m.supports(capability), m.priority, m.code),
        )
