"""Outbox drainer: relays PENDING records to the message broker.

One drain cycle:
1. Opens a session and a single transaction
2. Fetches the oldest PENDING records (FOR UPDATE SKIP LOCKED where supported)
3. Publishes each record with a bounded wait
4. Writes SENT, or PENDING/FAILED with retry bookkeeping, guarded by the
   record version
5. Commits the batch

Publish failures are contained per record. A store failure aborts the cycle
and rolls back every update made in it; the records stay PENDING and are
picked up again by the next cycle.

Delivery is at-least-once: a record that was published but whose update was
rolled back is published again later.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
import logging
import time
from typing import TYPE_CHECKING

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from sqlalchemy.exc import SQLAlchemyError

from outbox_relay.core.exceptions import PublishError, StoreError, VersionConflictError
from outbox_relay.infra.events.outbox.models import OutboxStatus
from outbox_relay.infra.events.outbox.repository import OutboxRepository
from outbox_relay.infra.events.outbox.state import (
    OutboxEntry,
    mark_failed,
    mark_processing,
    mark_sent,
    utc_now,
)
from outbox_relay.infra.metrics.prometheus import (
    outbox_drain_batch_size,
    outbox_drain_duration_seconds,
    outbox_drain_errors_total,
    outbox_drain_skipped_total,
    outbox_publish_duration_seconds,
    outbox_publish_total,
    outbox_version_conflicts_total,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from outbox_relay.core.settings.outbox import OutboxSettings
    from outbox_relay.infra.messaging.publisher import MessagePublisher

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("outbox_relay.drainer")


@dataclass(slots=True)
class DrainResult:
    """Outcome counts of one drain cycle."""

    fetched: int = 0
    sent: int = 0
    retried: int = 0
    failed: int = 0
    conflicts: int = 0
    skipped: bool = False

    def as_dict(self) -> dict[str, int | bool]:
        return {
            "fetched": self.fetched,
            "sent": self.sent,
            "retried": self.retried,
            "failed": self.failed,
            "conflicts": self.conflicts,
            "skipped": self.skipped,
        }


class OutboxDrainer:
    """Periodic relay of outbox records to the broker.

    Attributes:
        batch_size: Records fetched per cycle
        max_retry: Failed attempts before a record is parked as FAILED
        publish_timeout: Seconds to wait for a single publish
        lock_rows: Fetch with FOR UPDATE SKIP LOCKED
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: MessagePublisher,
        repository: OutboxRepository | None = None,
        *,
        batch_size: int = 100,
        max_retry: int = 5,
        publish_timeout: float = 10.0,
        lock_rows: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the drainer.

        Args:
            session_factory: Factory for sessions against the outbox database
            publisher: Broker adapter
            repository: Outbox data access, a fresh one by default
            batch_size: Records to fetch per cycle
            max_retry: Failed attempts before FAILED
            publish_timeout: Seconds to wait for a single publish
            lock_rows: Fetch with FOR UPDATE SKIP LOCKED
            clock: Source of the current UTC time
        """
        self.session_factory = session_factory
        self.publisher = publisher
        self.repository = repository or OutboxRepository()
        self.batch_size = batch_size
        self.max_retry = max_retry
        self.publish_timeout = publish_timeout
        self.lock_rows = lock_rows
        self._clock = clock
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: OutboxSettings,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: MessagePublisher,
    ) -> OutboxDrainer:
        poller = settings.poller
        return cls(
            session_factory,
            publisher,
            batch_size=poller.batch_size,
            max_retry=poller.max_retry,
            publish_timeout=poller.publish_timeout_seconds,
            lock_rows=poller.lock_rows,
        )

    @property
    def is_draining(self) -> bool:
        return self._lock.locked()

    async def drain(self) -> DrainResult:
        """Run one drain cycle.

        Returns immediately with `skipped=True` when a previous cycle is still
        in progress.

        Raises:
            StoreError: If reading or writing the outbox table failed. All
                updates of the cycle are rolled back.
        """
        if self._lock.locked():
            outbox_drain_skipped_total.inc()
            logger.debug("Outbox drain already running, skipping cycle")
            return DrainResult(skipped=True)

        async with self._lock:
            start = time.perf_counter()
            with tracer.start_as_current_span(
                "outbox.drain",
                kind=trace.SpanKind.INTERNAL,
            ) as span:
                span.set_attribute("outbox.batch_size", self.batch_size)
                try:
                    result = await self._drain_batch()
                except StoreError as exc:
                    outbox_drain_errors_total.inc()
                    span.set_status(Status(StatusCode.ERROR, str(exc)))
                    span.record_exception(exc)
                    logger.exception("Outbox drain cycle failed, batch rolled back")
                    raise
                finally:
                    outbox_drain_duration_seconds.observe(time.perf_counter() - start)

                for key, value in result.as_dict().items():
                    span.set_attribute(f"outbox.{key}", value)
                span.set_status(Status(StatusCode.OK))

        outbox_drain_batch_size.set(result.fetched)
        if result.fetched:
            logger.info("Outbox batch drained", extra=result.as_dict())
        return result

    async def _drain_batch(self) -> DrainResult:
        result = DrainResult()
        try:
            async with self.session_factory() as session, session.begin():
                entries = await self.repository.fetch_pending(
                    session,
                    limit=self.batch_size,
                    lock_rows=self.lock_rows,
                )
                result.fetched = len(entries)
                if not entries:
                    return result

                logger.debug("Processing outbox batch", extra={"batch_size": len(entries)})

                for entry in entries:
                    await self._process_entry(session, entry, result)
        except SQLAlchemyError as exc:
            raise StoreError("commit", str(exc)) from exc
        return result

    async def _process_entry(
        self,
        session: AsyncSession,
        entry: OutboxEntry,
        result: DrainResult,
    ) -> None:
        processing = mark_processing(entry)

        try:
            await self._publish(processing)
        except PublishError as exc:
            updated = mark_failed(processing, exc.reason, max_retry=self.max_retry)
            outcome = "failed" if updated.status is OutboxStatus.FAILED else "retried"
        else:
            updated = mark_sent(processing, at=self._clock())
            outcome = "sent"

        try:
            await self.repository.update(session, updated, expected_version=entry.version)
        except VersionConflictError:
            result.conflicts += 1
            outbox_version_conflicts_total.inc()
            logger.warning(
                "Outbox record changed concurrently, skipping",
                extra={"record_id": entry.id, "expected_version": entry.version},
            )
            return

        outbox_publish_total.labels(topic=entry.topic, outcome=outcome).inc()

        if outcome == "sent":
            result.sent += 1
            logger.debug(
                "Event published successfully",
                extra={"record_id": entry.id, "event_type": entry.event_type},
            )
            return

        if outcome == "failed":
            result.failed += 1
            logger.error(
                "Outbox record exhausted its retries, parked as FAILED",
                extra={
                    "record_id": entry.id,
                    "event_type": entry.event_type,
                    "retry_count": updated.retry_count,
                    "error": updated.last_error,
                },
            )
        else:
            result.retried += 1
            logger.warning(
                "Failed to publish event, will retry",
                extra={
                    "record_id": entry.id,
                    "event_type": entry.event_type,
                    "retry_count": updated.retry_count,
                    "error": updated.last_error,
                },
            )

    async def _publish(self, entry: OutboxEntry) -> None:
        """Publish one record, bounded by publish_timeout.

        Raises:
            PublishError: On timeout or any failure reported by the publisher
        """
        start = time.perf_counter()
        try:
            await asyncio.wait_for(
                self.publisher.send(
                    entry.topic,
                    entry.aggregate_id,
                    entry.payload_bytes,
                    event_type=entry.event_type,
                ),
                timeout=self.publish_timeout,
            )
        except TimeoutError as exc:
            reason = f"publish timed out after {self.publish_timeout}s"
            raise PublishError(entry.topic, reason) from exc
        except Exception as exc:
            raise PublishError(entry.topic, f"{type(exc).__name__}: {exc}") from exc
        finally:
            outbox_publish_duration_seconds.labels(topic=entry.topic).observe(
                time.perf_counter() - start
            )


__all__ = ["DrainResult", "OutboxDrainer"]
