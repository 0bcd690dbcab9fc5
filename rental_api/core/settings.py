from __future__ import annotations

import json
from decimal import Decimal
from typing import Annotated, List, Optional
from uuid import UUID

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _split_csv(v) -> List[str]:
    if v is None:
        return []
    if isinstance(v, str):
        if v.strip().startswith("["):
            return [str(p).strip() for p in json.loads(v) if str(p).strip()]
        return [p.strip() for p in v.split(",") if p.strip()]
    return list(v)


class AppSettings(BaseSettings):
    """
    Application-level settings for the FastAPI service.

    This is separate from rental_api.db.config.Settings, which focuses on the database layer.
    """

    # FastAPI metadata
    APP_NAME: str = Field(default="Rental Order Lifecycle API")
    APP_DESCRIPTION: str = Field(
        default=(
            "Backend API coordinating rental/logistics orders through pricing, approval, "
            "scan-gated fulfillment, event usage and return."
        )
    )
    APP_VERSION: str = Field(default="0.1.0")

    # CORS
    CORS_ORIGINS: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["*"],
        description="Comma-separated list or JSON array of allowed origins. Default: *",
    )
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True)
    CORS_ALLOW_METHODS: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["*"])
    CORS_ALLOW_HEADERS: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["*"])

    # Startup behavior
    RUN_MIGRATIONS_ON_STARTUP: bool = Field(
        default=True,
        description="If true, run Alembic migrations (upgrade head) at app startup.",
    )
    AUTO_SEED: bool = Field(
        default=False,
        description="If true, run minimal database seeding after migrations.",
    )
    START_NOTIFICATION_WORKER: bool = Field(
        default=True,
        description="If true, start the in-process notification worker at app startup.",
    )

    # Auth boundary (tokens are issued elsewhere; we only verify them)
    JWT_SECRET_KEY: str = Field(default="change-me")
    JWT_ALGORITHM: str = Field(default="HS256")

    # Scheduler
    CRON_SECRET: str = Field(
        default="change-me-in-production",
        description="Shared secret expected as 'Authorization: Bearer <secret>' on cron endpoints.",
    )
    SYSTEM_ACTOR_ID: UUID = Field(
        default=UUID("00000000-0000-0000-0000-000000000001"),
        description="Actor recorded in status history for automated transitions.",
    )
    PICKUP_REMINDER_HOURS: int = Field(default=48, ge=1)

    # Pricing
    DEFAULT_MARGIN_PERCENT: Decimal = Field(default=Decimal("25.00"))

    # Notifications
    NOTIFICATION_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    NOTIFICATION_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)
    NOTIFICATION_BACKOFF_MIN_SECONDS: float = Field(default=2.0, ge=0)
    NOTIFICATION_BACKOFF_MAX_SECONDS: float = Field(default=30.0, ge=0)
    NOTIFICATION_QUEUE_SIZE: int = Field(default=1000, ge=1)
    NOTIFICATION_WEBHOOK_URL: Optional[str] = Field(
        default=None,
        description="If set, notifications are POSTed here; otherwise they are only logged.",
    )
    PMG_NOTIFICATION_EMAILS: Annotated[List[str], NoDecode] = Field(default_factory=list)
    A2_NOTIFICATION_EMAILS: Annotated[List[str], NoDecode] = Field(default_factory=list)
    SUPPORT_EMAIL: str = Field(default="support@example.com")
    APP_BASE_URL: str = Field(default="http://localhost:3000")

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Root log level (DEBUG, INFO, WARNING...)")

    # Environment label
    ENVIRONMENT: Optional[str] = Field(
        default=None, description="Environment label (dev/test/prod)"
    )

    # Automatically load from .env at runtime. The orchestrator will provide these.
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("CORS_ORIGINS", "CORS_ALLOW_METHODS", "CORS_ALLOW_HEADERS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        """
        Accept both JSON array format and comma-separated formats for CORS lists.
        """
        return _split_csv(v) or ["*"]

    @field_validator("PMG_NOTIFICATION_EMAILS", "A2_NOTIFICATION_EMAILS", mode="before")
    @classmethod
    def _parse_email_lists(cls, v):
        return _split_csv(v)


# PUBLIC_INTERFACE
def get_app_settings() -> AppSettings:
    """
    Return a new AppSettings instance populated from environment variables.

    Note:
      For simplicity we construct a new instance each time. If caching is desired,
      we can add a module-level cache or lru_cache.
    """
    return AppSettings()
