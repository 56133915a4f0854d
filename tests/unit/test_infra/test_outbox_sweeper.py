"""Tests for the retention sweep."""
from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from outbox_relay.core.exceptions import StoreError
from outbox_relay.core.settings import OutboxSettings
from outbox_relay.infra.events.outbox.models import OutboxStatus
from outbox_relay.infra.events.outbox.repository import OutboxRepository
from outbox_relay.infra.events.outbox.sweeper import RetentionSweeper
from tests.utils import insert_records, make_record


async def _statuses(session_factory) -> dict[OutboxStatus, int]:
    async with session_factory() as session:
        return await OutboxRepository().count_by_status(session)


class TestRetentionSweeper:
    async def test_deletes_expired_sent_records(self, session_factory, clock):
        """SENT 8 days ago is deleted; SENT 1 day ago is kept."""
        await insert_records(
            session_factory,
            make_record(status=OutboxStatus.SENT, sent_at=clock.now - timedelta(days=8)),
            make_record(status=OutboxStatus.SENT, sent_at=clock.now - timedelta(days=1)),
        )
        sweeper = RetentionSweeper(session_factory, retention_days=7, clock=clock)

        deleted = await sweeper.sweep()

        assert deleted == 1
        assert (await _statuses(session_factory))[OutboxStatus.SENT] == 1

    async def test_second_sweep_deletes_nothing(self, session_factory, clock):
        await insert_records(
            session_factory,
            make_record(status=OutboxStatus.SENT, sent_at=clock.now - timedelta(days=8)),
        )
        sweeper = RetentionSweeper(session_factory, retention_days=7, clock=clock)

        assert await sweeper.sweep() == 1
        assert await sweeper.sweep() == 0

    async def test_never_deletes_undelivered_records(self, session_factory, clock):
        old = clock.now - timedelta(days=90)
        await insert_records(
            session_factory,
            make_record(created_at=old),
            make_record(status=OutboxStatus.FAILED, created_at=old, retry_count=5),
        )
        sweeper = RetentionSweeper(session_factory, retention_days=7, clock=clock)

        assert await sweeper.sweep() == 0
        counts = await _statuses(session_factory)
        assert counts[OutboxStatus.PENDING] == 1
        assert counts[OutboxStatus.FAILED] == 1

    async def test_record_becomes_eligible_as_time_passes(self, session_factory, clock):
        await insert_records(
            session_factory,
            make_record(status=OutboxStatus.SENT, sent_at=clock.now),
        )
        sweeper = RetentionSweeper(session_factory, retention_days=7, clock=clock)

        assert await sweeper.sweep() == 0
        clock.advance(days=7, seconds=1)
        assert await sweeper.sweep() == 1

    async def test_store_failure_is_reraised(self, session_factory):
        repository = AsyncMock(spec=OutboxRepository)
        repository.delete_older_than.side_effect = StoreError("delete_older_than", "locked")
        sweeper = RetentionSweeper(session_factory, repository)

        with pytest.raises(StoreError):
            await sweeper.sweep()

    def test_from_settings(self, session_factory):
        settings = OutboxSettings(cleanup={"retention_days": 14})

        sweeper = RetentionSweeper.from_settings(settings, session_factory)

        assert sweeper.retention == timedelta(days=14)
