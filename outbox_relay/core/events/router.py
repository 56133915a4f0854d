"""Event router: local listeners first, then cross-service delivery.

Every published event is handed to in-process listeners. Events whose type is
registered in the EventRegistry are additionally delivered to other services,
through one of two paths chosen once at construction:

- Durable (outbox enabled): the event is staged in the outbox table inside the
  caller's transaction and relayed later by the drainer.
- Direct (outbox disabled): the event is sent to the broker immediately.

Direct mode is weaker. A crash between the business commit and the send, or a
broker failure during the send, loses the event: failures are logged and
counted, never retried.

Usage:
    router = EventRouter.from_settings(dispatcher, publisher=publisher)

    async with session.begin():
        order.status = "PAYMENT_REQUESTED"
        await router.publish(OrderPaymentRequested(order_id=order.id), session)
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from outbox_relay.core.events.base import event_type_of
from outbox_relay.core.events.registry import EventRegistry, event_registry
from outbox_relay.core.events.serialization import serialize_event
from outbox_relay.core.exceptions import TransactionRequiredError
from outbox_relay.infra.metrics.prometheus import direct_publish_failures_total

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from outbox_relay.core.events.dispatcher import LocalEventDispatcher
    from outbox_relay.core.settings.outbox import OutboxSettings
    from outbox_relay.infra.events.outbox.writer import OutboxWriter
    from outbox_relay.infra.messaging.publisher import MessagePublisher

logger = logging.getLogger(__name__)


class EventRouter:
    """Routes domain events to local listeners and to the broker.

    Attributes:
        outbox_enabled: Durable mode when True, direct mode otherwise
        publish_timeout: Seconds to wait for a direct-mode send
    """

    def __init__(
        self,
        dispatcher: LocalEventDispatcher,
        *,
        writer: OutboxWriter | None = None,
        publisher: MessagePublisher | None = None,
        registry: EventRegistry | None = None,
        outbox_enabled: bool = False,
        publish_timeout: float = 10.0,
    ) -> None:
        if outbox_enabled and writer is None:
            msg = "An OutboxWriter is required when the outbox is enabled"
            raise ValueError(msg)
        self.dispatcher = dispatcher
        self.writer = writer
        self.publisher = publisher
        self.registry = registry if registry is not None else event_registry
        self.outbox_enabled = outbox_enabled
        self.publish_timeout = publish_timeout

    @classmethod
    def from_settings(
        cls,
        dispatcher: LocalEventDispatcher,
        *,
        publisher: MessagePublisher | None = None,
        registry: EventRegistry | None = None,
        settings: OutboxSettings | None = None,
    ) -> EventRouter:
        """Build a router whose mode follows `OUTBOX_ENABLED`."""
        from outbox_relay.core.settings import get_outbox_settings
        from outbox_relay.infra.events.outbox.writer import OutboxWriter

        settings = settings or get_outbox_settings()
        registry = registry if registry is not None else event_registry
        writer = OutboxWriter(registry) if settings.enabled else None
        return cls(
            dispatcher,
            writer=writer,
            publisher=publisher,
            registry=registry,
            outbox_enabled=settings.enabled,
            publish_timeout=settings.poller.publish_timeout_seconds,
        )

    async def publish(self, event: object, session: AsyncSession | None = None) -> None:
        """Publish an event.

        Local listeners run first and their exceptions propagate. In durable
        mode the outbox insert joins `session`'s open transaction; the router
        never begins or commits one.

        Args:
            event: Event instance
            session: Caller's session with an open transaction (durable mode)

        Raises:
            TransactionRequiredError: Durable mode without an open transaction
            SerializationError: If the payload cannot be encoded
            StoreError: If the outbox insert failed
        """
        await self.dispatcher.publish(event)

        if self.outbox_enabled:
            if session is None:
                raise TransactionRequiredError(event_type_of(event))
            assert self.writer is not None
            await self.writer.write(event, session)
            return

        await self._send_direct(event)

    async def _send_direct(self, event: object) -> None:
        metadata = self.registry.resolve(event)
        if metadata is None:
            return

        event_type = event_type_of(event)
        if self.publisher is None:
            logger.warning(
                "No message publisher configured, event not delivered",
                extra={"event_type": event_type, "topic": metadata.topic},
            )
            return

        payload = serialize_event(event).encode("utf-8")
        try:
            await asyncio.wait_for(
                self.publisher.send(
                    metadata.topic,
                    metadata.aggregate_id,
                    payload,
                    event_type=event_type,
                ),
                timeout=self.publish_timeout,
            )
        except Exception:
            direct_publish_failures_total.labels(event_type=event_type).inc()
            logger.exception(
                "Direct publish failed, event dropped",
                extra={
                    "event_type": event_type,
                    "topic": metadata.topic,
                    "aggregate_id": metadata.aggregate_id,
                },
            )


__all__ = ["EventRouter"]
