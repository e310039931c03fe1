"""Runtime configuration for the carrier orchestration engine."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CarriersConfig(BaseSettings):
    """Engine-wide settings.

    Reads from environment variables with CARRIERS_ prefix. Per-carrier
    ``max_retries`` and ``timeout_seconds`` stored on a carrier profile
    take precedence over the retry ceiling and request timeout here.
    """

    model_config = SettingsConfigDict(env_prefix="CARRIERS_")

    # Outbound provider calls
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_backoff_seconds: float = Field(default=1.0, ge=0)
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    fanout_timeout_seconds: float = Field(default=45.0, gt=0)
    token_ttl_seconds: int = 10 * 24 * 60 * 60

    # Shipment lifecycle
    default_delivery_window_days: int = 7
    tracking_history_limit: int = 50
    shipment_page_size: int = Field(default=20, ge=1)
    shipment_page_size_max: int = Field(default=100, ge=1)
    transition_max_attempts: int = Field(default=3, ge=1)
