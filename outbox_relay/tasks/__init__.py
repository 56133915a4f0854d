"""Scheduled relay jobs."""

from outbox_relay.tasks.scheduler import (
    OutboxRelay,
    get_outbox_relay,
    start_outbox_relay,
    stop_outbox_relay,
)

__all__ = ["OutboxRelay", "get_outbox_relay", "start_outbox_relay", "stop_outbox_relay"]
