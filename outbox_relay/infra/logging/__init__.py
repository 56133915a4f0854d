"""Logging setup for the relay process."""

from outbox_relay.infra.logging.config import configure_logging, setup_logging, shutdown
from outbox_relay.infra.logging.formatters import JSONFormatter

__all__ = ["JSONFormatter", "configure_logging", "setup_logging", "shutdown"]
