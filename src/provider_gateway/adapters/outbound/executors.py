"""Provider executors implementing ProviderExecutor.

Each executor performs the vendor call and nothing else.  Retries,
failover, circuit breaking, rate limiting and caching are the gateway's
job.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping

import httpx
import structlog

from provider_gateway.domain.exceptions import ProviderError, classify_error
from provider_gateway.ports.outbound import ProviderExecutor
from provider_gateway.shared.providers.types import ProviderResponse

logger = structlog.get_logger(__name__)

ExecutorFn = Callable[[str, Mapping[str, Any]], Awaitable[Any]]


class FunctionExecutor(ProviderExecutor):
    """Wraps a plain ``async def fn(capability, payload)``.

    If ``capabilities`` is given, any other capability is refused as a
    non-retryable provider error.
    """

    def __init__(self, fn: ExecutorFn, *, capabilities: set[str] | None = None) -> None:
        self._fn = fn
        self._capabilities = capabilities

    async def execute(self, capability: str, payload: Mapping[str, Any]) -> Any:
        if self._capabilities is not None and capability not in self._capabilities:
            raise ProviderError(f"Capability {capability!r} is not supported")
        return await self._fn(capability, payload)


class HttpExecutor(ProviderExecutor):
    """Generic JSON-over-HTTP provider: ``POST <base_url>/<capability>``.

    The response body is used as the output; a body of the form
    ``{"output": ..., "meta": {...}}`` is unpacked.
    """

    def __init__(
        self,
        code: str,
        base_url: str,
        *,
        api_key: str = "",
        headers: Mapping[str, str] | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._code = code
        self._base_url = base_url.rstrip("/")
        self._headers = {"Content-Type": "application/json", **(headers or {})}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def execute(self, capability: str, payload: Mapping[str, Any]) -> ProviderResponse:
        url = f"{self._base_url}/{capability}"
        try:
            response = await self._client.post(url, headers=self._headers, json=dict(payload))
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise classify_error(exc, self._code) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(
                f"Invalid JSON from provider: {exc}", provider=self._code
            ) from exc

        result = ProviderResponse.coerce(data)
        result.meta.setdefault("status_code", response.status_code)
        return result

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
