"""Payment gateway facade."""

from __future__ import annotations

from typing import Any, Mapping

from provider_gateway.shared.providers.gateway import Gateway
from provider_gateway.shared.providers.types import DispatchResult


class PaymentGateway:
    """Payment-action entry points over one payment ``Gateway``.

    Payment payloads go to the provider untouched.
    """

    def __init__(self, gateway: Gateway) -> None:
        self._gateway = gateway

    @property
    def gateway(self) -> Gateway:
        return self._gateway

    async def authorize(self, data: Mapping[str, Any], *, provider: str | None = None) -> DispatchResult:
        return await self._gateway.dispatch("authorize", data, provider)

    async def capture(self, data: Mapping[str, Any], *, provider: str | None = None) -> DispatchResult:
        return await self._gateway.dispatch("capture", data, provider)

    async def refund(self, data: Mapping[str, Any], *, provider: str | None = None) -> DispatchResult:
        return await self._gateway.dispatch("refund", data, provider)

    async def void(self, data: Mapping[str, Any], *, provider: str | None = None) -> DispatchResult:
        return await self._gateway.dispatch("void", data, provider)

    async def subscribe(self, data: Mapping[str, Any], *, provider: str | None = None) -> DispatchResult:
        return await self._gateway.dispatch("subscribe", data, provider)

    async def cancel_subscription(
        self, data: Mapping[str, Any], *, provider: str | None = None
    ) -> DispatchResult:
        return await self._gateway.dispatch("cancel_subscription", data, provider)
