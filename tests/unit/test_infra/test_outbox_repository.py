"""Tests for OutboxRepository against in-memory SQLite."""
from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from outbox_relay.core.exceptions import StoreError, VersionConflictError
from outbox_relay.infra.events.outbox.models import OutboxStatus
from outbox_relay.infra.events.outbox.repository import OutboxRepository
from outbox_relay.infra.events.outbox.state import mark_processing, mark_sent
from tests.utils import insert_records, make_record

T0 = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)


@pytest.fixture
def repo() -> OutboxRepository:
    return OutboxRepository()


class TestInsert:
    async def test_insert_assigns_id(self, repo, session_factory):
        """insert() flushes so the id is known inside the transaction."""
        async with session_factory() as session, session.begin():
            record_id = await repo.insert(session, make_record())

        assert isinstance(record_id, int)
        async with session_factory() as session:
            entry = await repo.get(session, record_id)

        assert entry is not None
        assert entry.status is OutboxStatus.PENDING
        assert entry.version == 0
        assert entry.created_at == T0


class TestFetchPending:
    async def test_oldest_first_with_limit(self, repo, session_factory):
        """FIFO by created_at; only `limit` records are returned."""
        ids = await insert_records(
            session_factory,
            make_record(aggregate_id="t2", created_at=T0 + timedelta(seconds=2)),
            make_record(aggregate_id="t0", created_at=T0),
            make_record(aggregate_id="t1", created_at=T0 + timedelta(seconds=1)),
        )

        async with session_factory() as session, session.begin():
            entries = await repo.fetch_pending(session, limit=2)

        assert [e.aggregate_id for e in entries] == ["t0", "t1"]
        assert {e.id for e in entries} == {ids[1], ids[2]}

    async def test_same_timestamp_ordered_by_id(self, repo, session_factory):
        ids = await insert_records(
            session_factory,
            make_record(aggregate_id="a"),
            make_record(aggregate_id="b"),
            make_record(aggregate_id="c"),
        )

        async with session_factory() as session, session.begin():
            entries = await repo.fetch_pending(session, limit=10, lock_rows=False)

        assert [e.id for e in entries] == sorted(ids)

    async def test_only_pending_records(self, repo, session_factory):
        await insert_records(
            session_factory,
            make_record(aggregate_id="pending"),
            make_record(aggregate_id="sent", status=OutboxStatus.SENT, sent_at=T0),
            make_record(aggregate_id="failed", status=OutboxStatus.FAILED, retry_count=5),
            make_record(aggregate_id="processing", status=OutboxStatus.PROCESSING),
        )

        async with session_factory() as session, session.begin():
            entries = await repo.fetch_pending(session, limit=10)

        assert [e.aggregate_id for e in entries] == ["pending"]

    async def test_empty_table(self, repo, session_factory):
        async with session_factory() as session, session.begin():
            assert await repo.fetch_pending(session, limit=10) == []


class TestUpdate:
    async def test_update_advances_version(self, repo, session_factory):
        (record_id,) = await insert_records(session_factory, make_record())

        async with session_factory() as session, session.begin():
            (entry,) = await repo.fetch_pending(session, limit=1)
            sent = mark_sent(mark_processing(entry), at=T0 + timedelta(minutes=1))
            updated = await repo.update(session, sent, expected_version=entry.version)

        assert updated.version == 1
        async with session_factory() as session:
            stored = await repo.get(session, record_id)

        assert stored is not None
        assert stored.status is OutboxStatus.SENT
        assert stored.sent_at == T0 + timedelta(minutes=1)
        assert stored.version == 1

    async def test_stale_version_raises_conflict(self, repo, session_factory):
        """A second writer holding the old version is rejected."""
        (record_id,) = await insert_records(session_factory, make_record())

        async with session_factory() as session, session.begin():
            (entry,) = await repo.fetch_pending(session, limit=1)
            processing = mark_processing(entry)
            await repo.update(session, processing, expected_version=0)

            with pytest.raises(VersionConflictError) as exc_info:
                await repo.update(session, processing, expected_version=0)

        assert exc_info.value.record_id == record_id
        assert exc_info.value.expected_version == 0

    async def test_missing_row_raises_conflict(self, repo, session_factory):
        """Updating a row that no longer exists is reported as a conflict."""
        await insert_records(session_factory, make_record())

        async with session_factory() as session, session.begin():
            (entry,) = await repo.fetch_pending(session, limit=1)
            ghost = replace(mark_processing(entry), id=entry.id + 100)

            with pytest.raises(VersionConflictError):
                await repo.update(session, ghost, expected_version=0)


class TestDeleteOlderThan:
    async def test_deletes_only_expired_sent_records(self, repo, session_factory):
        """8-day-old SENT goes; 1-day-old SENT and old PENDING/FAILED stay."""
        now = T0
        ids = await insert_records(
            session_factory,
            make_record(
                aggregate_id="old",
                status=OutboxStatus.SENT,
                sent_at=now - timedelta(days=8),
            ),
            make_record(
                aggregate_id="new",
                status=OutboxStatus.SENT,
                sent_at=now - timedelta(days=1),
            ),
            make_record(aggregate_id="pending", created_at=now - timedelta(days=30)),
            make_record(
                aggregate_id="failed",
                status=OutboxStatus.FAILED,
                created_at=now - timedelta(days=30),
            ),
        )

        async with session_factory() as session, session.begin():
            deleted = await repo.delete_older_than(session, age=timedelta(days=7), now=now)

        assert deleted == 1
        async with session_factory() as session:
            assert await repo.get(session, ids[0]) is None
            for remaining in ids[1:]:
                assert await repo.get(session, remaining) is not None


class TestOperationalQueries:
    async def test_count_by_status_reports_every_status(self, repo, session_factory):
        await insert_records(
            session_factory,
            make_record(),
            make_record(),
            make_record(status=OutboxStatus.FAILED, retry_count=5),
        )

        async with session_factory() as session:
            counts = await repo.count_by_status(session)

        assert counts == {
            OutboxStatus.PENDING: 2,
            OutboxStatus.PROCESSING: 0,
            OutboxStatus.SENT: 0,
            OutboxStatus.FAILED: 1,
        }

    async def test_requeue_all_failed_keeps_retry_count(self, repo, session_factory):
        ids = await insert_records(
            session_factory,
            make_record(status=OutboxStatus.FAILED, retry_count=5, last_error="refused"),
            make_record(status=OutboxStatus.FAILED, retry_count=5),
            make_record(status=OutboxStatus.SENT, sent_at=T0),
        )

        async with session_factory() as session, session.begin():
            count = await repo.requeue_failed(session)

        assert count == 2
        async with session_factory() as session:
            first = await repo.get(session, ids[0])
            sent = await repo.get(session, ids[2])

        assert first is not None
        assert first.status is OutboxStatus.PENDING
        assert first.retry_count == 5
        assert first.last_error == "refused"
        assert first.version == 1
        assert sent is not None
        assert sent.status is OutboxStatus.SENT

    async def test_requeue_selected_ids(self, repo, session_factory):
        ids = await insert_records(
            session_factory,
            make_record(status=OutboxStatus.FAILED, retry_count=5),
            make_record(status=OutboxStatus.FAILED, retry_count=5),
        )

        async with session_factory() as session, session.begin():
            count = await repo.requeue_failed(session, [ids[1]])

        assert count == 1
        async with session_factory() as session:
            counts = await repo.count_by_status(session)

        assert counts[OutboxStatus.PENDING] == 1
        assert counts[OutboxStatus.FAILED] == 1


class TestStoreErrors:
    async def test_sqlalchemy_errors_are_wrapped(self, repo):
        """Missing table surfaces as StoreError naming the operation."""
        engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        try:
            async with factory() as session:
                with pytest.raises(StoreError) as exc_info:
                    await repo.fetch_pending(session, limit=1)
        finally:
            await engine.dispose()

        assert exc_info.value.operation == "fetch_pending"
