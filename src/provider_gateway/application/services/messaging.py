"""Messaging gateway facade — email, SMS, push, WhatsApp, Slack and webhooks."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

import structlog

from provider_gateway.application.services.payloads import build_payload
from provider_gateway.domain.exceptions import GatewayError
from provider_gateway.shared.providers.gateway import Gateway
from provider_gateway.shared.providers.types import DispatchResult

logger = structlog.get_logger(__name__)


@dataclass
class BatchReport:
    """Outcome of ``MessageGateway.send_batch``.

    ``results`` is index-aligned with the input; a failed message has
    ``None`` there and an entry in ``errors``.
    """

    message_type: str
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    results: list[DispatchResult | None] = field(default_factory=list)
    errors: dict[int, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message_type": self.message_type,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "results": [r.to_dict() if r is not None else None for r in self.results],
            "errors": {str(i): e for i, e in self.errors.items()},
        }


class MessageGateway:
    """Message-type entry points over one messaging ``Gateway``."""

    def __init__(self, gateway: Gateway) -> None:
        self._gateway = gateway

    @property
    def gateway(self) -> Gateway:
        return self._gateway

    async def send_email(self, message: Mapping[str, Any], *, provider: str | None = None) -> DispatchResult:
        return await self.send("email", message, provider=provider)

    async def send_sms(self, message: Mapping[str, Any], *, provider: str | None = None) -> DispatchResult:
        return await self.send("sms", message, provider=provider)

    async def send_push(self, message: Mapping[str, Any], *, provider: str | None = None) -> DispatchResult:
        return await self.send("push", message, provider=provider)

    async def send_whatsapp(self, message: Mapping[str, Any], *, provider: str | None = None) -> DispatchResult:
        return await self.send("whatsapp", message, provider=provider)

    async def send_slack(self, message: Mapping[str, Any], *, provider: str | None = None) -> DispatchResult:
        return await self.send("slack", message, provider=provider)

    async def send_webhook(self, message: Mapping[str, Any], *, provider: str | None = None) -> DispatchResult:
        return await self.send("webhook", message, provider=provider)

    async def send(
        self,
        message_type: str,
        message: Mapping[str, Any],
        *,
        provider: str | None = None,
    ) -> DispatchResult:
        """Send one message of any type through the gateway."""
        payload = build_payload(message_type, message)
        return await self._gateway.dispatch(message_type, payload, provider)

    async def send_batch(
        self,
        message_type: str,
        messages: Sequence[Mapping[str, Any]],
        *,
        concurrency: int = 10,
        provider: str | None = None,
    ) -> BatchReport:
        """Send many messages concurrently, at most ``concurrency`` in flight.

        A message that exhausts every provider is reported, not raised.
        There is no persistent send queue: batches are sent immediately and
        nothing is stored for later processing or queue statistics.
        """
        report = BatchReport(
            message_type=message_type,
            total=len(messages),
            results=[None] * len(messages),
        )
        semaphore = asyncio.Semaphore(max(1, concurrency))

        async def _send_one(index: int, message: Mapping[str, Any]) -> None:
            async with semaphore:
                try:
                    report.results[index] = await self.send(message_type, message, provider=provider)
                except GatewayError as exc:
                    report.errors[index] = exc.message

        await asyncio.gather(*(_send_one(i, m) for i, m in enumerate(messages)))
        report.failed = len(report.errors)
        report.succeeded = report.total - report.failed
        logger.info(
            "message_batch_sent",
            message_type=message_type,
            total=report.total,
            succeeded=report.succeeded,
            failed=report.failed,
        )
        return report
