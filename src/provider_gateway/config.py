"""Provider Gateway — Application Configuration."""

from __future__ import annotations

import enum
import warnings
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from provider_gateway.domain.enums import GatewayDomain
from provider_gateway.domain.exceptions import ExpressionError
from provider_gateway.shared.expressions import compile_expression


class Environment(str, enum.Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class GatewaySettings(BaseModel):
    """Tuning for one gateway instance (one domain)."""

    domain: GatewayDomain
    namespace: str = ""
    default_provider: str

    # Retry
    max_retries: int = Field(default=3, gt=0)
    backoff_multiplier: float = Field(default=2.0, gt=0)
    backoff_formula: str | None = None
    call_timeout_seconds: float = Field(default=30.0, gt=0)

    # Circuit breaker
    circuit_breaker_threshold: int = Field(default=5, gt=0)
    circuit_breaker_timeout_seconds: float = Field(default=300.0, gt=0)
    health_ttl_seconds: float = Field(default=3600.0, gt=0)

    # Rate limiting (max_requests = 0 → unlimited)
    rate_limit_window_seconds: float = Field(default=60.0, gt=0)
    rate_limit_max_requests: int = Field(default=100, ge=0)

    # Response cache
    cache_enabled: bool = True
    cache_ttl_seconds: float = Field(default=3600.0, gt=0)
    cacheable_capabilities: list[str] = Field(default_factory=list)
    cache_payload_markers: list[str] = Field(default_factory=list)
    volatile_fields: list[str] = Field(
        default_factory=lambda: ["request_id", "message_id", "attempt", "timestamp"]
    )

    # Capability → ordered provider codes
    fallback_order: dict[str, list[str]] = Field(default_factory=dict)

    @property
    def key_namespace(self) -> str:
        return self.namespace or f"pgw:{self.domain.value}"

    @field_validator("backoff_formula")
    @classmethod
    def _validate_backoff_formula(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        try:
            compile_expression(v, {"attempt", "multiplier"})
        except ExpressionError as exc:
            raise ValueError(f"backoff_formula is invalid: {exc.message}") from exc
        return v

    @field_validator("fallback_order")
    @classmethod
    def _validate_fallback_order(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        for capability, chain in v.items():
            if len(set(chain)) != len(chain):
                raise ValueError(f"fallback chain for {capability!r} lists a provider twice")
        return v


class AiGatewaySettings(GatewaySettings):
    domain: GatewayDomain = GatewayDomain.AI
    default_provider: str = "openai"
    cache_ttl_seconds: float = Field(default=3600.0, gt=0)
    cacheable_capabilities: list[str] = Field(
        default_factory=lambda: [
            "chat", "completion", "embedding", "analysis", "prediction", "clustering",
        ]
    )
    fallback_order: dict[str, list[str]] = Field(
        default_factory=lambda: {
            "chat": ["openai", "anthropic", "gemini", "local_ml"],
            "completion": ["openai", "anthropic", "gemini", "local_ml"],
            "embedding": ["openai", "gemini", "local_ml"],
            "image": ["openai", "stable_diffusion", "midjourney"],
            "analysis": ["openai", "anthropic", "local_ml"],
            "prediction": ["local_ml", "openai", "anthropic"],
            "clustering": ["local_ml", "openai"],
        }
    )


class MessagingGatewaySettings(GatewaySettings):
    domain: GatewayDomain = GatewayDomain.MESSAGING
    default_provider: str = "smtp"
    cache_ttl_seconds: float = Field(default=1800.0, gt=0)
    rate_limit_max_requests: int = Field(default=1000, ge=0)
    cache_payload_markers: list[str] = Field(
        default_factory=lambda: ["validate_only", "render_only"]
    )
    fallback_order: dict[str, list[str]] = Field(
        default_factory=lambda: {
            "email": ["sendgrid", "mailgun", "smtp", "mailhog"],
            "sms": ["twilio", "nexmo", "messagebird"],
            "push": ["onesignal", "pusher", "firebase"],
            "whatsapp": ["twilio", "whatsapp_business"],
            "slack": ["slack", "webhook"],
            "webhook": ["http", "guzzle"],
        }
    )


class PaymentGatewaySettings(GatewaySettings):
    domain: GatewayDomain = GatewayDomain.PAYMENT
    default_provider: str = "stripe"
    max_retries: int = Field(default=2, gt=0)
    circuit_breaker_threshold: int = Field(default=3, gt=0)
    cache_enabled: bool = False
    fallback_order: dict[str, list[str]] = Field(
        default_factory=lambda: {
            "authorize": ["stripe", "paypal", "authorizenet"],
            "capture": ["stripe", "paypal"],
            "refund": ["stripe", "paypal"],
            "void": ["stripe", "authorizenet"],
            "subscribe": ["stripe", "paypal"],
            "cancel_subscription": ["stripe", "paypal"],
        }
    )


class HttpProviderConfig(BaseModel):
    """A provider reached through the generic JSON-over-HTTP executor."""

    code: str
    domain: GatewayDomain
    base_url: str
    capabilities: list[str] = Field(default_factory=list)
    priority: int = 10
    description: str = ""
    api_key: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = Field(default=30.0, gt=0)

    @field_validator("base_url")
    @classmethod
    def _validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with 'http://' or 'https://'")
        return v.rstrip("/")


class Settings(BaseSettings):
    """Process-wide settings, read from the environment and an optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────
    app_name: str = "provider-gateway"
    app_env: Environment = Environment.DEVELOPMENT
    log_level: str = "INFO"
    json_logs: bool = False

    # ── Shared state store ───────────────────────────────────
    # "" or "memory://" → in-process store; "redis://..." → Redis
    state_store_url: str = "memory://"
    redis_max_connections: int = 50
    store_lock_timeout_seconds: float = 5.0

    # ── Gateways ─────────────────────────────────────────────
    ai: AiGatewaySettings = Field(default_factory=AiGatewaySettings)
    messaging: MessagingGatewaySettings = Field(default_factory=MessagingGatewaySettings)
    payment: PaymentGatewaySettings = Field(default_factory=PaymentGatewaySettings)

    # ── Providers ────────────────────────────────────────────
    http_providers: list[HttpProviderConfig] = Field(default_factory=list)

    # ── Observability ────────────────────────────────────────
    event_buffer_size: int = Field(default=500, gt=0)
    prometheus_enabled: bool = True

    # ── Derived helpers ──────────────────────────────────────
    @property
    def is_production(self) -> bool:
        return self.app_env == Environment.PRODUCTION

    def gateway(self, domain: GatewayDomain | str) -> GatewaySettings:
        return {
            GatewayDomain.AI: self.ai,
            GatewayDomain.MESSAGING: self.messaging,
            GatewayDomain.PAYMENT: self.payment,
        }[GatewayDomain(domain)]

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, v: str) -> str:
        return v.upper()

    @field_validator("state_store_url")
    @classmethod
    def _validate_state_store_url(cls, v: str) -> str:
        if v and not v.startswith(("memory://", "redis://", "rediss://", "unix://")):
            raise ValueError(
                "state_store_url must be empty or start with "
                "'memory://', 'redis://', 'rediss://' or 'unix://'"
            )
        return v

    @model_validator(mode="after")
    def _warn_local_store_in_production(self) -> Settings:
        """Breaker and limiter state must be shared once there is more than one worker."""
        if self.app_env == Environment.PRODUCTION and (
            not self.state_store_url or self.state_store_url.startswith("memory://")
        ):
            warnings.warn(
                "state_store_url uses the in-process store in production: "
                "circuit and rate state will not be shared between workers",
                UserWarning,
                stacklevel=2,
            )
        return self


def get_settings(**overrides: Any) -> Settings:
    """Build settings, letting callers override any field."""
    return Settings(**overrides)
