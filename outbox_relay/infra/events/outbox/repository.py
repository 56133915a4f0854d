"""Repository for outbox records.

Provides methods for:
- Inserting records inside the caller's transaction
- Fetching the oldest PENDING records for a drain cycle
- Version-checked updates of drained records
- Deleting delivered records past retention
- Operational counts and manual requeue of FAILED records

Every SQLAlchemy failure is re-raised as StoreError.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError

from outbox_relay.core.exceptions import StoreError, VersionConflictError
from outbox_relay.infra.events.outbox.models import OutboxRecord, OutboxStatus
from outbox_relay.infra.events.outbox.state import OutboxEntry

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession


class OutboxRepository:
    """Data access for the outbox_record table.

    Stateless; one instance can be shared by the writer, the drainer and the
    sweeper. Transactions are owned by the callers.
    """

    async def insert(self, session: AsyncSession, record: OutboxRecord) -> int:
        """Add a record and flush so the primary key is assigned.

        Args:
            session: Session with an open transaction
            record: New, transient record

        Returns:
            The assigned record id
        """
        try:
            session.add(record)
            await session.flush()
        except SQLAlchemyError as exc:
            raise StoreError("insert", str(exc)) from exc
        return record.id

    async def fetch_pending(
        self,
        session: AsyncSession,
        *,
        limit: int = 100,
        lock_rows: bool = True,
    ) -> list[OutboxEntry]:
        """Fetch the oldest PENDING records.

        Records are ordered by created_at, then id, so inserts within the same
        clock tick keep their insertion order.

        Args:
            session: Database session
            limit: Maximum number of records to return
            lock_rows: Use FOR UPDATE SKIP LOCKED so concurrent drainers on
                PostgreSQL skip rows another drainer holds. Dialects without
                row locks (SQLite) render no locking clause.

        Returns:
            Snapshots of the fetched records, oldest first
        """
        stmt = (
            select(OutboxRecord)
            .where(OutboxRecord.status == OutboxStatus.PENDING.value)
            .order_by(OutboxRecord.created_at.asc(), OutboxRecord.id.asc())
            .limit(limit)
        )
        if lock_rows:
            stmt = stmt.with_for_update(skip_locked=True)

        try:
            result = await session.execute(stmt)
            records: Sequence[OutboxRecord] = result.scalars().all()
        except SQLAlchemyError as exc:
            raise StoreError("fetch_pending", str(exc)) from exc
        return [OutboxEntry.from_record(record) for record in records]

    async def update(
        self,
        session: AsyncSession,
        entry: OutboxEntry,
        *,
        expected_version: int,
    ) -> OutboxEntry:
        """Persist a snapshot if nobody else updated the row since it was read.

        Args:
            session: Database session
            entry: Snapshot carrying the new status, sent_at, retry_count and
                last_error
            expected_version: Version the caller read

        Returns:
            The snapshot with its version advanced

        Raises:
            VersionConflictError: If the stored version differs
            StoreError: If the statement fails
        """
        new_version = expected_version + 1
        stmt = (
            update(OutboxRecord)
            .where(
                OutboxRecord.id == entry.id,
                OutboxRecord.version == expected_version,
            )
            .values(
                status=entry.status.value,
                sent_at=entry.sent_at,
                retry_count=entry.retry_count,
                last_error=entry.last_error,
                version=new_version,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = await session.execute(stmt)
        except SQLAlchemyError as exc:
            raise StoreError("update", str(exc)) from exc

        if result.rowcount == 0:
            raise VersionConflictError(entry.id, expected_version)

        return OutboxEntry(
            id=entry.id,
            aggregate_type=entry.aggregate_type,
            aggregate_id=entry.aggregate_id,
            event_type=entry.event_type,
            topic=entry.topic,
            payload=entry.payload,
            status=entry.status,
            created_at=entry.created_at,
            sent_at=entry.sent_at,
            retry_count=entry.retry_count,
            last_error=entry.last_error,
            version=new_version,
        )

    async def delete_older_than(
        self,
        session: AsyncSession,
        *,
        age: timedelta,
        status: OutboxStatus = OutboxStatus.SENT,
        now: datetime | None = None,
    ) -> int:
        """Delete records in `status` whose sent_at is older than `age`.

        This is a maintenance operation to keep the outbox table small.

        Args:
            session: Database session
            age: Retention window
            status: Status to delete (SENT by default)
            now: Reference time, defaults to the current UTC time

        Returns:
            Number of records deleted
        """
        cutoff = (now or datetime.now(UTC)) - age
        stmt = (
            delete(OutboxRecord)
            .where(
                OutboxRecord.status == status.value,
                OutboxRecord.sent_at.is_not(None),
                OutboxRecord.sent_at < cutoff,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = await session.execute(stmt)
        except SQLAlchemyError as exc:
            raise StoreError("delete_older_than", str(exc)) from exc
        return result.rowcount or 0

    async def get(self, session: AsyncSession, record_id: int) -> OutboxEntry | None:
        """Get a fresh snapshot of one record, or None if it does not exist."""
        stmt = (
            select(OutboxRecord)
            .where(OutboxRecord.id == record_id)
            .execution_options(populate_existing=True)
        )
        try:
            result = await session.execute(stmt)
            record = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StoreError("get", str(exc)) from exc
        return OutboxEntry.from_record(record) if record is not None else None

    async def count_by_status(self, session: AsyncSession) -> dict[OutboxStatus, int]:
        """Count records per status; statuses with no rows report 0."""
        stmt = select(OutboxRecord.status, func.count(OutboxRecord.id)).group_by(
            OutboxRecord.status
        )
        try:
            result = await session.execute(stmt)
            rows = result.all()
        except SQLAlchemyError as exc:
            raise StoreError("count_by_status", str(exc)) from exc

        counts = dict.fromkeys(OutboxStatus, 0)
        for status, count in rows:
            counts[OutboxStatus(status)] = count
        return counts

    async def requeue_failed(
        self,
        session: AsyncSession,
        ids: Sequence[int] | None = None,
    ) -> int:
        """Move FAILED records back to PENDING.

        retry_count is left unchanged, so a requeued record gets a single
        further attempt before it is parked as FAILED again.

        Args:
            session: Database session
            ids: Restrict the requeue to these record ids; all FAILED
                records when None

        Returns:
            Number of records requeued
        """
        stmt = (
            update(OutboxRecord)
            .where(OutboxRecord.status == OutboxStatus.FAILED.value)
            .values(
                status=OutboxStatus.PENDING.value,
                version=OutboxRecord.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if ids is not None:
            stmt = stmt.where(OutboxRecord.id.in_(list(ids)))
        try:
            result = await session.execute(stmt)
        except SQLAlchemyError as exc:
            raise StoreError("requeue_failed", str(exc)) from exc
        return result.rowcount or 0


__all__ = ["OutboxRepository"]
