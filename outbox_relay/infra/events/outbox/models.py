"""OutboxRecord SQLAlchemy model for the transactional outbox pattern.

An outbox record is written in the same transaction as the business change
that produced the event, so either both are committed or neither is. The
drainer later reads PENDING records in creation order, publishes them and
moves each one to SENT, back to PENDING for another attempt, or to FAILED
once the retry budget is exhausted.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from outbox_relay.core.database.base import Base, IntegerPKMixin


class OutboxStatus(str, Enum):
    """Delivery state of an outbox record."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SENT = "SENT"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (OutboxStatus.SENT, OutboxStatus.FAILED)


class OutboxRecord(Base, IntegerPKMixin):
    """Outbox table row.

    Attributes:
        id: Auto-increment primary key, assigned on insert
        aggregate_type: Logical entity kind (e.g., "Order")
        aggregate_id: Entity identifier, used as the broker routing key
        event_type: Event type tag
        topic: Destination topic
        payload: Canonical JSON text of the event
        status: PENDING, PROCESSING, SENT or FAILED
        created_at: Insert time, never changed afterwards
        sent_at: Set once when the record reaches SENT
        retry_count: Failed publish attempts so far
        last_error: Most recent publish error, truncated
        version: Optimistic concurrency token, +1 on every update

    Indexes serve the drainer's fetch (status, created_at) and lookups of
    all records for one aggregate.
    """

    __tablename__ = "outbox_record"

    aggregate_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Aggregate type (e.g., User, Order)",
    )
    aggregate_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Aggregate ID, used as routing/partition key",
    )
    event_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Event type identifier",
    )
    topic: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Destination topic / routing key",
    )
    payload: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="JSON-serialized event data",
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=OutboxStatus.PENDING.value,
        comment="PENDING, PROCESSING, SENT or FAILED",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the record was written",
    )
    sent_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the event was successfully published",
    )
    retry_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Number of failed publish attempts",
    )
    last_error: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Last error message if publishing failed",
    )
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Optimistic concurrency version",
    )

    __table_args__ = (
        Index("ix_outbox_record_status_created", "status", "created_at"),
        Index("ix_outbox_record_aggregate", "aggregate_type", "aggregate_id"),
    )

    def __repr__(self) -> str:
        """Human-readable representation."""
        return (
            f"OutboxRecord("
            f"id={self.id}, "
            f"event_type={self.event_type!r}, "
            f"status={self.status}, "
            f"retries={self.retry_count}"
            f")"
        )


__all__ = ["OutboxRecord", "OutboxStatus"]
