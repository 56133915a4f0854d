"""Outbox relay settings.

Environment variables use the OUTBOX_ prefix and `__` for nested groups:

    OUTBOX_ENABLED=true
    OUTBOX_POLLER__BATCH_SIZE=200
    OUTBOX_POLLER__INTERVAL_MS=2000
    OUTBOX_CLEANUP__SCHEDULE="30 2 * * *"

The same keys can be set in conf/outbox.yaml:

    enabled: true
    poller:
      batch_size: 200
    cleanup:
      retention_days: 14
"""

from __future__ import annotations

from typing import Any

from apscheduler.triggers.cron import CronTrigger
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .yaml_sources import create_yaml_source


class PollerSettings(BaseModel):
    """Drain cycle configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(
        default=True,
        description="Run the periodic drain job in this process.",
    )
    batch_size: int = Field(
        default=100,
        ge=1,
        le=10_000,
        description="Maximum number of PENDING records fetched per drain cycle.",
    )
    max_retry: int = Field(
        default=5,
        ge=1,
        le=1000,
        description="Failed publish attempts before a record is parked as FAILED.",
    )
    interval_ms: int = Field(
        default=5000,
        ge=10,
        description="Milliseconds between drain cycles.",
    )
    publish_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=300.0,
        description="Upper bound for a single broker publish.",
    )
    lock_rows: bool = Field(
        default=True,
        description="Fetch with FOR UPDATE SKIP LOCKED where the database supports it.",
    )

    @property
    def interval_seconds(self) -> float:
        """Drain interval in seconds."""
        return self.interval_ms / 1000


class CleanupSettings(BaseModel):
    """Retention sweep configuration."""

    model_config = ConfigDict(frozen=True)

    schedule: str = Field(
        default="0 3 * * *",
        description="Crontab expression (UTC) for the retention sweep.",
    )
    retention_days: int = Field(
        default=7,
        ge=1,
        le=3650,
        description="SENT records older than this many days are deleted.",
    )

    @field_validator("schedule")
    @classmethod
    def _validate_schedule(cls, value: str) -> str:
        """Reject crontab expressions APScheduler cannot parse."""
        try:
            CronTrigger.from_crontab(value, timezone="UTC")
        except ValueError as exc:
            msg = f"Invalid cleanup schedule {value!r}: {exc}"
            raise ValueError(msg) from exc
        return value


class OutboxSettings(BaseSettings):
    """Transactional outbox configuration.

    `enabled` selects the durable path in the event router. When False the
    router publishes straight to the broker after local listeners run, which
    loses events if the process dies between the business commit and the
    publish.
    """

    enabled: bool = Field(
        default=False,
        description="Route cross-service events through the outbox table.",
    )
    poller: PollerSettings = Field(default_factory=PollerSettings)
    cleanup: CleanupSettings = Field(default_factory=CleanupSettings)

    model_config = SettingsConfigDict(
        env_prefix="OUTBOX_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: Any,
        env_settings: Any,
        dotenv_settings: Any,
        file_secret_settings: Any,
    ) -> tuple[Any, ...]:
        """Customize settings source precedence: init > yaml > env > dotenv > secrets."""
        return (
            init_settings,
            create_yaml_source(settings_cls, "outbox"),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )
