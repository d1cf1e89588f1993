"""Outbound ports: the contracts every infrastructure adapter fulfils.

These are the *driven* ports in hexagonal architecture.  The gateway core
depends only on these abstractions, never on concrete implementations
(Redis clients, HTTP clients, vendor SDKs, etc.).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import TYPE_CHECKING, Any, Mapping

if TYPE_CHECKING:
    from provider_gateway.shared.providers.types import (
        DispatchEvent,
        ProviderMetadata,
        ProviderResponse,
    )


# ═══════════════════════════════════════════════════════════════
#  Shared state store port
# ═══════════════════════════════════════════════════════════════
class StateStore(ABC):
    """Key-value store shared by every dispatching instance.

    Holds provider health, rate windows, cached responses and metric
    aggregates.  Values must be JSON-compatible.
    """

    @abstractmethod
    async def get(self, key: str) -> Any | None: ...

    @abstractmethod
    async def set(self, key: str, value: Any, *, ttl_seconds: float | None = None) -> None: ...

    @abstractmethod
    async def delete(self, key: str) -> None: ...

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with ``prefix``; returns the number removed."""
        ...

    @abstractmethod
    def lock(self, key: str) -> AbstractAsyncContextManager[Any]:
        """Per-key mutual exclusion for read-modify-write sequences."""
        ...

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        return None


# ═══════════════════════════════════════════════════════════════
#  Provider ports
# ═══════════════════════════════════════════════════════════════
class ProviderExecutor(ABC):
    """Vendor-specific executor for one or more capabilities."""

    @abstractmethod
    async def execute(
        self, capability: str, payload: Mapping[str, Any]
    ) -> ProviderResponse | Mapping[str, Any]:
        """Run the capability; raise ``ProviderError`` (or anything) on failure."""
        ...

    async def close(self) -> None:
        return None


class ProviderRegistry(ABC):
    """Directory of known providers."""

    @abstractmethod
    def list(self) -> list[ProviderMetadata]: ...

    @abstractmethod
    def get(self, code: str) -> ProviderExecutor: ...


# ═══════════════════════════════════════════════════════════════
#  Observability sink port
# ═══════════════════════════════════════════════════════════════
class EventSink(ABC):
    """Write-only target for structured dispatch events."""

    @abstractmethod
    async def emit(self, event: DispatchEvent) -> None: ...
