"""Provider registry implementing ProviderRegistry.

Providers are registered explicitly, either at start-up from configuration
or by plugin code calling ``register``.
"""

from __future__ import annotations

from typing import Callable, Union

import structlog

from provider_gateway.ports.outbound import ProviderExecutor, ProviderRegistry
from provider_gateway.shared.providers.types import ProviderMetadata

logger = structlog.get_logger(__name__)

ExecutorFactory = Callable[[], ProviderExecutor]


class StaticProviderRegistry(ProviderRegistry):
    """In-memory registration table.

    An entry holds either a ready executor or a zero-argument factory; a
    factory is invoked on the first ``get`` and its executor reused.
    """

    def __init__(self) -> None:
        self._metadata: dict[str, ProviderMetadata] = {}
        self._entries: dict[str, Union[ProviderExecutor, ExecutorFactory]] = {}

    def register(
        self,
        metadata: ProviderMetadata,
        executor: ProviderExecutor | ExecutorFactory,
    ) -> None:
        if metadata.code in self._metadata:
            logger.warning("provider_reregistered", provider=metadata.code)
        self._metadata[metadata.code] = metadata
        self._entries[metadata.code] = executor
        logger.debug(
            "provider_registered",
            provider=metadata.code,
            domain=metadata.domain,
            capabilities=sorted(metadata.capabilities),
        )

    def unregister(self, code: str) -> None:
        self._metadata.pop(code, None)
        self._entries.pop(code, None)

    def list(self) -> list[ProviderMetadata]:
        return sorted(self._metadata.values(), key=lambda m: (m.priority, m.code))

    def get(self, code: str) -> ProviderExecutor:
        """Raises ``KeyError`` for an unknown provider."""
        entry = self._entries[code]
        if not isinstance(entry, ProviderExecutor):
            entry = entry()
            self._entries[code] = entry
        return entry

    def __contains__(self, code: object) -> bool:
        return code in self._metadata

    def __len__(self) -> int:
        return len(self._metadata)
