"""Domain facades over the generic provider gateway."""

from provider_gateway.application.services.ai import AiGateway
from provider_gateway.application.services.messaging import BatchReport, MessageGateway
from provider_gateway.application.services.payment import PaymentGateway

__all__ = ["AiGateway", "BatchReport", "MessageGateway", "PaymentGateway"]
