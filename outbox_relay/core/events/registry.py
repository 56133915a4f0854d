"""Outbox delivery registry.

Maps an event-type tag to the metadata needed to persist and route the event:
aggregate type, aggregate id and destination topic. Event types opt in to
durable cross-service delivery by registering here during startup; types
without an entry are simply not written to the outbox.

Usage:
    from outbox_relay.core.events import DomainEvent, event_registry

    @event_registry.outbox(
        aggregate_type="Order",
        topic="market.order.payment-requested",
        aggregate_id="order_id",
    )
    class OrderPaymentRequested(DomainEvent):
        event_type: ClassVar[str] = "market.order.payment_requested"
        order_id: int

    # Or register a type you don't own with a callable extractor
    event_registry.register(
        MemberJoined,
        aggregate_type="Member",
        topic="member.joined",
        aggregate_id=lambda event: event.member.id,
    )

    metadata = event_registry.resolve(event)  # OutboxMetadata | None
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging
from operator import attrgetter
from typing import Any, TypeVar

from outbox_relay.core.events.base import DomainEvent, event_type_of
from outbox_relay.core.exceptions import DuplicateEventTypeError

logger = logging.getLogger(__name__)

T = TypeVar("T")

AggregateIdExtractor = Callable[[Any], Any]


@dataclass(slots=True, frozen=True)
class OutboxMetadata:
    """Where and under which key an event is delivered."""

    aggregate_type: str
    aggregate_id: str
    topic: str


@dataclass(slots=True, frozen=True)
class OutboxRoute:
    """Registered resolver for one event type."""

    event_type: str
    event_class: type
    aggregate_type: str
    topic: str
    aggregate_id: AggregateIdExtractor

    def resolve(self, event: object) -> OutboxMetadata:
        return OutboxMetadata(
            aggregate_type=self.aggregate_type,
            aggregate_id=str(self.aggregate_id(event)),
            topic=self.topic,
        )


class EventRegistry:
    """Registry of event types that are delivered through the outbox.

    Registration is expected during startup; lookups are read-only afterwards.
    """

    def __init__(self) -> None:
        self._routes: dict[str, OutboxRoute] = {}

    def register(
        self,
        event_class: type[T],
        *,
        aggregate_type: str,
        topic: str,
        aggregate_id: str | AggregateIdExtractor,
    ) -> type[T]:
        """Register delivery metadata for an event class.

        Args:
            event_class: The event class (DomainEvent subclass or any class)
            aggregate_type: Logical entity kind, e.g. "Order"
            topic: Destination topic / routing key
            aggregate_id: Attribute name (dotted paths allowed) or callable
                returning the aggregate id; the value is stringified

        Returns:
            The event class, unchanged

        Raises:
            DuplicateEventTypeError: If the event type already has a route
        """
        event_type = (
            event_class.get_event_type()
            if issubclass(event_class, DomainEvent)
            else event_class.__name__
        )

        existing = self._routes.get(event_type)
        if existing is not None:
            raise DuplicateEventTypeError(event_type, existing.event_class.__name__)

        extractor = attrgetter(aggregate_id) if isinstance(aggregate_id, str) else aggregate_id

        self._routes[event_type] = OutboxRoute(
            event_type=event_type,
            event_class=event_class,
            aggregate_type=aggregate_type,
            topic=topic,
            aggregate_id=extractor,
        )

        logger.debug(
            "Registered outbox route",
            extra={
                "event_type": event_type,
                "aggregate_type": aggregate_type,
                "topic": topic,
            },
        )
        return event_class

    def outbox(
        self,
        *,
        aggregate_type: str,
        topic: str,
        aggregate_id: str | AggregateIdExtractor,
    ) -> Callable[[type[T]], type[T]]:
        """Class decorator form of register()."""

        def _register(cls: type[T]) -> type[T]:
            return self.register(
                cls,
                aggregate_type=aggregate_type,
                topic=topic,
                aggregate_id=aggregate_id,
            )

        return _register

    def resolve(self, event: object) -> OutboxMetadata | None:
        """Resolve delivery metadata for an event instance.

        Returns:
            The metadata, or None if the event type has no route
        """
        route = self._routes.get(event_type_of(event))
        if route is None:
            return None
        return route.resolve(event)

    def get(self, event_type: str) -> OutboxRoute | None:
        """Get the route registered for an event type tag."""
        return self._routes.get(event_type)

    def list_types(self) -> list[str]:
        """List all registered event types."""
        return list(self._routes.keys())

    def __contains__(self, event_type: str) -> bool:
        """Check if event type is registered."""
        return event_type in self._routes

    def __len__(self) -> int:
        """Get total number of registered event types."""
        return len(self._routes)

    def clear(self) -> None:
        """Clear all registrations (mainly for testing)."""
        self._routes.clear()


# Global registry instance
event_registry = EventRegistry()


__all__ = ["EventRegistry", "OutboxMetadata", "OutboxRoute", "event_registry"]
