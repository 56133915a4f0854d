"""Domain events, delivery registry and routing.

Usage:
    from outbox_relay.core.events import DomainEvent, event_registry

    @event_registry.outbox(aggregate_type="Order", topic="order.paid", aggregate_id="order_id")
    class OrderPaid(DomainEvent):
        event_type: ClassVar[str] = "order.paid"
        order_id: int
"""

from outbox_relay.core.events.base import DomainEvent, event_type_of
from outbox_relay.core.events.dispatcher import LocalEventDispatcher
from outbox_relay.core.events.registry import (
    EventRegistry,
    OutboxMetadata,
    OutboxRoute,
    event_registry,
)
from outbox_relay.core.events.router import EventRouter
from outbox_relay.core.events.serialization import serialize_event

__all__ = [
    "DomainEvent",
    "EventRegistry",
    "EventRouter",
    "LocalEventDispatcher",
    "OutboxMetadata",
    "OutboxRoute",
    "event_registry",
    "event_type_of",
    "serialize_event",
]
