"""Test utilities: sample events, a fake broker publisher and a controllable clock.

Usage:
    from tests.utils import FakePublisher, FrozenClock, OrderPaymentRequested

    publisher = FakePublisher(fail_times=2)
    clock = FrozenClock(datetime(2025, 1, 1, tzinfo=UTC))
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any, ClassVar

from outbox_relay.core.events.base import DomainEvent
from outbox_relay.infra.events.outbox.models import OutboxRecord, OutboxStatus

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


class OrderPaymentRequested(DomainEvent):
    event_type: ClassVar[str] = "market.order.payment_requested"

    order_id: int
    amount: Decimal


class OrderShipped(DomainEvent):
    event_type: ClassVar[str] = "market.order.shipped"

    order_id: int


class MemberNotified(DomainEvent):
    """Never registered for outbox delivery."""

    event_type: ClassVar[str] = "member.notified"

    member_id: int


@dataclass
class MemberJoined:
    """Plain dataclass event (no DomainEvent base)."""

    member_id: int
    nickname: str


@dataclass
class SentMessage:
    topic: str
    key: str
    payload: bytes
    event_type: str | None = None


@dataclass
class FakePublisher:
    """In-memory MessagePublisher.

    Args:
        fail_times: Number of initial sends that raise ConnectionError
        fail_always: Raise on every send
        delay: Seconds each send sleeps before completing
    """

    fail_times: int = 0
    fail_always: bool = False
    delay: float = 0.0
    sent: list[SentMessage] = field(default_factory=list)
    attempts: int = 0

    async def send(
        self,
        topic: str,
        key: str,
        payload: bytes,
        *,
        event_type: str | None = None,
    ) -> None:
        self.attempts += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_always or self.attempts <= self.fail_times:
            msg = "broker unavailable"
            raise ConnectionError(msg)
        self.sent.append(SentMessage(topic, key, payload, event_type))

    @property
    def sent_keys(self) -> list[str]:
        return [message.key for message in self.sent]


class FrozenClock:
    """Callable clock returning a fixed, manually advanced UTC time."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2025, 1, 15, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def make_record(**overrides: Any) -> OutboxRecord:
    """Build a PENDING outbox record with sensible defaults."""
    values: dict[str, Any] = {
        "aggregate_type": "Order",
        "aggregate_id": "1",
        "event_type": "market.order.payment_requested",
        "topic": "market.order.payment-requested",
        "payload": '{"order_id": 1}',
        "status": OutboxStatus.PENDING.value,
        "created_at": datetime(2025, 1, 15, 12, 0, tzinfo=UTC),
        "sent_at": None,
        "retry_count": 0,
        "last_error": None,
        "version": 0,
    }
    values.update(overrides)
    if isinstance(values["status"], OutboxStatus):
        values["status"] = values["status"].value
    return OutboxRecord(**values)


async def insert_records(
    session_factory: async_sessionmaker[AsyncSession],
    *records: OutboxRecord,
) -> list[int]:
    """Insert records in their own committed transaction and return their ids."""
    async with session_factory() as session, session.begin():
        session.add_all(records)
        await session.flush()
        return [record.id for record in records]
