"""Tests for OutboxWriter: atomicity with the caller's transaction."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import json
from typing import Any

import pytest
from sqlalchemy import String, func, select
from sqlalchemy.orm import Mapped, mapped_column

from outbox_relay.core.database.base import Base, IntegerPKMixin
from outbox_relay.core.events.registry import EventRegistry
from outbox_relay.core.exceptions import SerializationError, TransactionRequiredError
from outbox_relay.infra.events.outbox.models import OutboxRecord, OutboxStatus
from outbox_relay.infra.events.outbox.writer import OutboxWriter
from tests.utils import FrozenClock, MemberJoined, MemberNotified, OrderPaymentRequested


class Order(Base, IntegerPKMixin):
    """Business table written in the same transaction as the outbox."""

    __tablename__ = "test_order"

    status: Mapped[str] = mapped_column(String(20))


@dataclass
class BrokenEvent:
    order_id: int
    blob: Any


class MemberModified:
    def __init__(self, member_id: int, nickname: str) -> None:
        self.member_id = member_id
        self.nickname = nickname


async def _count(session_factory, model) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.fixture
def writer(registry: EventRegistry, clock: FrozenClock) -> OutboxWriter:
    registry.register(
        BrokenEvent,
        aggregate_type="Order",
        topic="broken",
        aggregate_id="order_id",
    )
    registry.register(
        MemberModified,
        aggregate_type="Member",
        topic="member.modified",
        aggregate_id="member_id",
    )
    return OutboxWriter(registry, clock=clock)


class TestOutboxWriter:
    """Tests for OutboxWriter.write."""

    async def test_writes_pending_record(self, writer, session_factory, clock):
        """A registered event becomes a PENDING record with fresh bookkeeping."""
        event = OrderPaymentRequested(order_id=42, amount=Decimal("10.00"))

        async with session_factory() as session, session.begin():
            record = await writer.write(event, session)

        assert record is not None
        async with session_factory() as session:
            stored = await session.get(OutboxRecord, record.id)

        assert stored is not None
        assert stored.aggregate_type == "Order"
        assert stored.aggregate_id == "42"
        assert stored.event_type == "market.order.payment_requested"
        assert stored.topic == "market.order.payment-requested"
        assert stored.status == OutboxStatus.PENDING.value
        assert stored.retry_count == 0
        assert stored.version == 0
        assert stored.sent_at is None
        assert stored.last_error is None
        assert json.loads(stored.payload)["amount"] == "10.00"

    async def test_commits_with_business_change(self, writer, session_factory):
        """Business row and outbox record commit together."""
        async with session_factory() as session, session.begin():
            session.add(Order(status="PAYMENT_REQUESTED"))
            await writer.write(MemberJoined(member_id=1, nickname="kim"), session)

        assert await _count(session_factory, Order) == 1
        assert await _count(session_factory, OutboxRecord) == 1

    async def test_rollback_discards_both(self, writer, session_factory):
        """If the business transaction rolls back, no outbox record survives."""
        with pytest.raises(RuntimeError):
            async with session_factory() as session, session.begin():
                session.add(Order(status="PAYMENT_REQUESTED"))
                await writer.write(
                    OrderPaymentRequested(order_id=1, amount=Decimal("1")),
                    session,
                )
                raise RuntimeError("business rule violated")

        assert await _count(session_factory, Order) == 0
        assert await _count(session_factory, OutboxRecord) == 0

    async def test_unregistered_event_writes_nothing(self, writer, session_factory):
        async with session_factory() as session, session.begin():
            assert await writer.write(MemberNotified(member_id=1), session) is None

        assert await _count(session_factory, OutboxRecord) == 0

    async def test_requires_open_transaction(self, writer, session_factory):
        """Writing outside a transaction is a programming error."""
        async with session_factory() as session:
            with pytest.raises(TransactionRequiredError):
                await writer.write(MemberJoined(member_id=1, nickname="kim"), session)

        assert await _count(session_factory, OutboxRecord) == 0

    async def test_serialization_error_aborts_transaction(self, writer, session_factory):
        """An unencodable payload fails the write and the business change."""
        with pytest.raises(SerializationError):
            async with session_factory() as session, session.begin():
                session.add(Order(status="PAYMENT_REQUESTED"))
                await writer.write(BrokenEvent(order_id=1, blob=object()), session)

        assert await _count(session_factory, Order) == 0
        assert await _count(session_factory, OutboxRecord) == 0

    async def test_records_use_clock(self, writer, session_factory, clock):
        async with session_factory() as session, session.begin():
            record = await writer.write(MemberJoined(member_id=2, nickname="lee"), session)

        assert record is not None
        assert record.created_at == clock.now

    async def test_each_publish_creates_a_record(self, writer, session_factory):
        """No deduplication across calls."""
        event = MemberJoined(member_id=1, nickname="kim")

        async with session_factory() as session, session.begin():
            await writer.write(event, session)
            await writer.write(event, session)

        assert await _count(session_factory, OutboxRecord) == 2

    async def test_plain_class_event(self, writer, session_factory):
        """Registered plain classes are staged with their attributes as payload."""
        async with session_factory() as session, session.begin():
            record = await writer.write(MemberModified(7, "choi"), session)

        assert record is not None
        assert record.event_type == "MemberModified"
        assert record.aggregate_id == "7"
        assert json.loads(record.payload) == {"member_id": 7, "nickname": "choi"}
