"""Domain enumerations — value types shared across all layers."""

from __future__ import annotations

import enum


class GatewayDomain(str, enum.Enum):
    """Family of capabilities a gateway instance serves."""

    AI = "ai"
    MESSAGING = "messaging"
    PAYMENT = "payment"

    @property
    def request_prefix(self) -> str:
        return _REQUEST_PREFIXES[self]


_REQUEST_PREFIXES = {
    GatewayDomain.AI: "ai",
    GatewayDomain.MESSAGING: "msg",
    GatewayDomain.PAYMENT: "pay",
}


class ErrorKind(str, enum.Enum):
    """Structured classification of a provider failure."""

    AUTH = "auth"
    QUOTA = "quota"
    TIMEOUT = "timeout"
    GENERIC = "generic"

    @property
    def retryable(self) -> bool:
        return self not in (ErrorKind.AUTH, ErrorKind.QUOTA)
