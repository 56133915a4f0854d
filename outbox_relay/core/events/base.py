"""Domain event base class.

Domain events are immutable pydantic models. Each concrete subclass names
itself with an `event_type` tag; the tag is what the outbox registry keys on
and what ends up in the `event_type` column.

Example:
    class OrderPaymentRequested(DomainEvent):
        event_type: ClassVar[str] = "market.order.payment_requested"

        order_id: int
        amount: Decimal
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, ClassVar
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class DomainEvent(BaseModel):
    """Base class for all domain events.

    Attributes:
        event_id: Unique identifier for this event instance
        occurred_at: When the event occurred (UTC)
        correlation_id: ID linking related events across services
        metadata: Additional context (user_id, request_id, etc.)
    """

    event_type: ClassVar[str] = "domain.event"
    event_version: ClassVar[int] = 1

    event_id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique event identifier",
    )
    occurred_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Event timestamp in UTC",
    )
    correlation_id: str | None = Field(
        default=None,
        description="Correlation ID for distributed tracing",
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event metadata",
    )

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        extra="forbid",
    )

    def __init_subclass__(cls, **kwargs: Any) -> None:
        """Validate subclass has required class variables.

        Every subclass names itself; subclasses of concrete events do not
        inherit the parent's tag or its outbox registration.
        """
        super().__init_subclass__(**kwargs)
        if "event_type" not in cls.__dict__ or cls.event_type == "domain.event":
            msg = f"{cls.__name__} must define its own 'event_type' class variable"
            raise TypeError(msg)

    @classmethod
    def get_event_type(cls) -> str:
        """Get the event type identifier."""
        return cls.event_type

    def with_correlation(self, correlation_id: str) -> DomainEvent:
        """Create a copy of this event with a correlation ID."""
        return self.model_copy(update={"correlation_id": correlation_id})

    def __repr__(self) -> str:
        """Human-readable representation."""
        return (
            f"{self.__class__.__name__}("
            f"event_id={self.event_id!r}, "
            f"event_type={self.event_type!r}, "
            f"occurred_at={self.occurred_at.isoformat()}"
            f")"
        )


def event_type_of(event: object) -> str:
    """Return the type tag for an event instance.

    DomainEvent subclasses use their `event_type`; any other object falls back
    to its class name.
    """
    if isinstance(event, DomainEvent):
        return event.get_event_type()
    return type(event).__name__


__all__ = ["DomainEvent", "event_type_of"]
