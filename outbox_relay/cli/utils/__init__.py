"""CLI utilities for running async operations and formatting output."""

from outbox_relay.cli.utils.async_runner import coro
from outbox_relay.cli.utils.formatters import (
    count_table,
    error,
    header,
    info,
    key_values,
    success,
    warning,
)

__all__ = [
    "coro",
    "count_table",
    "error",
    "header",
    "info",
    "key_values",
    "success",
    "warning",
]
