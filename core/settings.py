"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so gateway credentials can be rotated
without touching the application settings.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 3.0
    read: float = 10.0
    write: float = 10.0
    total: float = 30.0


class PaymentRetry(BaseModel):
    max: int = 1
    base_backoff: float = 0.5


class WebhookSettings(BaseModel):
    tolerance_seconds: int = 300
    ip_allowlist: list[str] | None = None  # Optional IPs/CIDRs allowed to post webhooks


class WaafiPaySettings(BaseModel):
    api_url: str = "https://api.waafipay.com/v2"
    hpp_url: str = "https://pay.waafipay.com"
    api_key: Optional[str] = None
    merchant_id: Optional[str] = None
    webhook_secret: Optional[str] = None
    app_url: str = "http://localhost:3000"
    redirect_url: Optional[str] = None
    callback_url: Optional[str] = None
    use_hosted_page: bool = True


class PaymentSettings(BaseSettings):
    default_provider: str = Field(default="waafipay", validation_alias="PAYMENT__DEFAULT_PROVIDER")
    currency: str = "USD"
    reference_prefix: str = "THUB"
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)

    waafipay: WaafiPaySettings = Field(default_factory=WaafiPaySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
