"""Transactional outbox: staging, draining and retention of event records.

Usage:
    from outbox_relay.infra.events.outbox import OutboxDrainer, OutboxWriter

    writer = OutboxWriter()
    async with session.begin():
        ...  # business change
        await writer.write(event, session)

    drainer = OutboxDrainer(get_session_factory(), publisher)
    result = await drainer.drain()
"""

from outbox_relay.infra.events.outbox.models import OutboxRecord, OutboxStatus
from outbox_relay.infra.events.outbox.processor import DrainResult, OutboxDrainer
from outbox_relay.infra.events.outbox.repository import OutboxRepository
from outbox_relay.infra.events.outbox.state import (
    OutboxEntry,
    mark_failed,
    mark_processing,
    mark_sent,
)
from outbox_relay.infra.events.outbox.sweeper import RetentionSweeper
from outbox_relay.infra.events.outbox.writer import OutboxWriter

__all__ = [
    "DrainResult",
    "OutboxDrainer",
    "OutboxEntry",
    "OutboxRecord",
    "OutboxRepository",
    "OutboxStatus",
    "OutboxWriter",
    "RetentionSweeper",
    "mark_failed",
    "mark_processing",
    "mark_sent",
]
