"""CLI command modules."""

from outbox_relay.cli.commands import outbox

__all__ = ["outbox"]
