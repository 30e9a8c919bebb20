"""Runtime configuration."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class CourierLinkConfig(BaseSettings):
    """Runtime config for the shipping subsystem.

    Reads from environment variables with COURIERLINK_ prefix. Per-carrier
    behaviour (credentials, rate cards, status mapping) is persisted data,
    not settings.
    """

    model_config = SettingsConfigDict(env_prefix="COURIERLINK_")

    database_url: str = "sqlite+aiosqlite:///./courierlink.db"
    default_carrier: str | None = None

    # Upper bound for every outbound carrier call
    http_timeout_seconds: float = 30.0

    # Tracking poll job
    poll_enabled: bool = True
    poll_interval_seconds: int = 3600
    poll_stale_after_seconds: int = 3600
    poll_batch_size: int = 100
    poll_item_delay_seconds: float = 0.5

    cod_auto_collect: bool = True

    # Webhook retry settings
    retry_max_attempts: int = 5
    retry_backoff_seconds: int = 60
    retry_enabled: bool = True
