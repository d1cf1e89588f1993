"""AI gateway facade — chat, completion, embeddings, images and ML tasks."""

from __future__ import annotations

from typing import Any, Sequence

from provider_gateway.shared.providers.gateway import Gateway
from provider_gateway.shared.providers.types import DispatchResult


class AiGateway:
    """Capability-named entry points over one AI ``Gateway``.

    Every method accepts extra ``options`` that are merged into the payload
    (model, temperature, ...) and an optional ``provider`` hint.
    """

    def __init__(self, gateway: Gateway) -> None:
        self._gateway = gateway

    @property
    def gateway(self) -> Gateway:
        return self._gateway

    async def chat(self, prompt: str, *, provider: str | None = None, **options: Any) -> DispatchResult:
        return await self._dispatch("chat", {"prompt": prompt}, options, provider)

    async def completion(self, prompt: str, *, provider: str | None = None, **options: Any) -> DispatchResult:
        return await self._dispatch("completion", {"prompt": prompt}, options, provider)

    async def embedding(
        self, input: str | Sequence[str], *, provider: str | None = None, **options: Any
    ) -> DispatchResult:
        value = input if isinstance(input, str) else list(input)
        return await self._dispatch("embedding", {"input": value}, options, provider)

    async def image(self, prompt: str, *, provider: str | None = None, **options: Any) -> DispatchResult:
        return await self._dispatch("image", {"prompt": prompt}, options, provider)

    async def analysis(self, data: Any, *, provider: str | None = None, **options: Any) -> DispatchResult:
        return await self._dispatch("analysis", {"data": data}, options, provider)

    async def prediction(self, features: Any, *, provider: str | None = None, **options: Any) -> DispatchResult:
        return await self._dispatch("prediction", {"features": features}, options, provider)

    async def clustering(self, data: Any, *, provider: str | None = None, **options: Any) -> DispatchResult:
        return await self._dispatch("clustering", {"data": data}, options, provider)

    async def _dispatch(
        self,
        capability: str,
        payload: dict[str, Any],
        options: dict[str, Any],
        provider: str | None,
    ) -> DispatchResult:
        # Explicit arguments win over same-named options
        return await self._gateway.dispatch(capability, {**options, **payload}, provider)
