"""Application settings models.

Models from settings.yaml configuration.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ProcessorConfig(BaseModel):
    """Payment processor client settings."""

    api_version: str = Field(default="2023-10-16", description="Pinned processor API version")
    request_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Upper bound for a single processor request"
    )
    max_network_retries: int = Field(
        default=0,
        ge=0,
        description="Automatic SDK retries; keep at 0 so cancellations are never replayed",
    )


class RefundConfig(BaseModel):
    """Refund policy applied on cancellation."""

    grace_period_days: int = Field(default=3, ge=0, description="Days of use that still get a full refund")
    reason: str = Field(default="requested_by_customer", description="Reason sent with processor refunds")
    audit_reason: str = Field(default="Subscription cancelled", description="Reason stored on the audit row")


class NotificationConfig(BaseModel):
    """Outbound email settings."""

    enabled: bool = Field(default=True, description="Send lifecycle emails")
    sender: str = Field(default="No Reply <no-reply@example.com>", description="From header")
    smtp_host: Optional[str] = Field(None, description="SMTP server host; unset disables delivery")
    smtp_port: int = Field(default=587, description="SMTP server port")
    use_tls: bool = Field(default=True, description="Issue STARTTLS before login")
    timeout_seconds: float = Field(default=10.0, gt=0, description="SMTP connection timeout")
    async_delivery: bool = Field(
        default=True, description="Deliver on a background worker after the state write"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "enabled": True,
                "sender": "Billing <billing@example.com>",
                "smtp_host": "smtp.gmail.com",
                "smtp_port": 587,
                "use_tls": True,
                "timeout_seconds": 10,
                "async_delivery": True,
            }
        }


class WebhookConfig(BaseModel):
    """Inbound webhook verification settings."""

    tolerance_seconds: int = Field(default=300, ge=0, description="Allowed signature timestamp skew")


class AppSettings(BaseModel):
    """Complete settings.yaml configuration."""

    processor: ProcessorConfig = Field(default_factory=ProcessorConfig)
    refunds: RefundConfig = Field(default_factory=RefundConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
