"""Outbox writer: stages events in the caller's transaction.

The record is inserted through the caller's session, so it is committed or
rolled back together with the business change that produced the event.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
import logging
from typing import TYPE_CHECKING

from outbox_relay.core.events.base import event_type_of
from outbox_relay.core.events.registry import EventRegistry, event_registry
from outbox_relay.core.events.serialization import serialize_event
from outbox_relay.core.exceptions import TransactionRequiredError
from outbox_relay.infra.events.outbox.models import OutboxRecord, OutboxStatus
from outbox_relay.infra.events.outbox.repository import OutboxRepository
from outbox_relay.infra.events.outbox.state import utc_now
from outbox_relay.infra.metrics.prometheus import outbox_records_written_total

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class OutboxWriter:
    """Resolves, serializes and inserts PENDING outbox records.

    Example:
        writer = OutboxWriter()

        async with session.begin():
            order.status = "PAYMENT_REQUESTED"
            await writer.write(OrderPaymentRequested(order_id=order.id), session)
            # The outbox record commits with the order update
    """

    def __init__(
        self,
        registry: EventRegistry | None = None,
        repository: OutboxRepository | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.registry = registry if registry is not None else event_registry
        self.repository = repository or OutboxRepository()
        self._clock = clock

    async def write(self, event: object, session: AsyncSession) -> OutboxRecord | None:
        """Stage an event for asynchronous delivery.

        Args:
            event: Event instance
            session: Session with an open transaction; the writer never
                begins, commits or rolls back

        Returns:
            The inserted record, or None when the event type is not
            registered for outbox delivery

        Raises:
            TransactionRequiredError: If the session has no open transaction
            SerializationError: If the payload cannot be encoded
            StoreError: If the insert failed
        """
        event_type = event_type_of(event)
        if not session.in_transaction():
            raise TransactionRequiredError(event_type)

        metadata = self.registry.resolve(event)
        if metadata is None:
            logger.debug(
                "Event type not registered for outbox delivery",
                extra={"event_type": event_type},
            )
            return None

        payload = serialize_event(event)

        record = OutboxRecord(
            aggregate_type=metadata.aggregate_type,
            aggregate_id=metadata.aggregate_id,
            event_type=event_type,
            topic=metadata.topic,
            payload=payload,
            status=OutboxStatus.PENDING.value,
            created_at=self._clock(),
            sent_at=None,
            retry_count=0,
            last_error=None,
            version=0,
        )
        record_id = await self.repository.insert(session, record)

        outbox_records_written_total.labels(event_type=event_type).inc()
        logger.debug(
            "Event staged in outbox",
            extra={
                "record_id": record_id,
                "event_type": event_type,
                "aggregate_type": metadata.aggregate_type,
                "aggregate_id": metadata.aggregate_id,
                "topic": metadata.topic,
            },
        )
        return record


__all__ = ["OutboxWriter"]
