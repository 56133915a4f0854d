"""Pydantic Settings v2 configuration, one model per domain.

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. YAML/conf.d files (optional)
    3. Environment variables
    4. .env file
    5. secrets_dir
"""

from __future__ import annotations

from .database import DatabaseSettings
from .loader import (
    clear_settings_cache,
    get_db_settings,
    get_logging_settings,
    get_outbox_settings,
    get_rabbit_settings,
)
from .logs import LoggingSettings
from .outbox import CleanupSettings, OutboxSettings, PollerSettings
from .rabbit import RabbitSettings

__all__ = [
    "CleanupSettings",
    "DatabaseSettings",
    "LoggingSettings",
    "OutboxSettings",
    "PollerSettings",
    "RabbitSettings",
    "clear_settings_cache",
    "get_db_settings",
    "get_logging_settings",
    "get_outbox_settings",
    "get_rabbit_settings",
]
