"""Immutable outbox snapshots and their state transitions.

The drainer never mutates ORM rows directly. It reads an OutboxEntry, derives
the next entry with one of the transition functions below and hands it to
OutboxRepository.update(), which writes it only if the stored version still
matches the version that was read.

    PENDING ──> PROCESSING ──> SENT
                    │
                    ├──> PENDING   (publish failed, retries left)
                    └──> FAILED    (publish failed, retries exhausted)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime

from outbox_relay.core.exceptions import InvalidTransitionError
from outbox_relay.infra.events.outbox.models import OutboxRecord, OutboxStatus

MAX_ERROR_LENGTH = 1000

_ALLOWED: dict[OutboxStatus, frozenset[OutboxStatus]] = {
    OutboxStatus.PENDING: frozenset({OutboxStatus.PROCESSING}),
    OutboxStatus.PROCESSING: frozenset(
        {OutboxStatus.SENT, OutboxStatus.PENDING, OutboxStatus.FAILED}
    ),
    OutboxStatus.SENT: frozenset(),
    OutboxStatus.FAILED: frozenset(),
}


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


@dataclass(slots=True, frozen=True)
class OutboxEntry:
    """Point-in-time copy of an outbox record."""

    id: int
    aggregate_type: str
    aggregate_id: str
    event_type: str
    topic: str
    payload: str
    status: OutboxStatus
    created_at: datetime
    sent_at: datetime | None = None
    retry_count: int = 0
    last_error: str | None = None
    version: int = 0

    @classmethod
    def from_record(cls, record: OutboxRecord) -> OutboxEntry:
        return cls(
            id=record.id,
            aggregate_type=record.aggregate_type,
            aggregate_id=record.aggregate_id,
            event_type=record.event_type,
            topic=record.topic,
            payload=record.payload,
            status=OutboxStatus(record.status),
            created_at=as_utc(record.created_at),
            sent_at=as_utc(record.sent_at),
            retry_count=record.retry_count,
            last_error=record.last_error,
            version=record.version,
        )

    @property
    def payload_bytes(self) -> bytes:
        return self.payload.encode("utf-8")


def _check(entry: OutboxEntry, target: OutboxStatus) -> None:
    if target not in _ALLOWED[entry.status]:
        raise InvalidTransitionError(entry.id, entry.status.value, target.value)


def mark_processing(entry: OutboxEntry) -> OutboxEntry:
    """PENDING -> PROCESSING."""
    _check(entry, OutboxStatus.PROCESSING)
    return replace(entry, status=OutboxStatus.PROCESSING)


def mark_sent(entry: OutboxEntry, *, at: datetime) -> OutboxEntry:
    """PROCESSING -> SENT, stamping sent_at."""
    _check(entry, OutboxStatus.SENT)
    return replace(entry, status=OutboxStatus.SENT, sent_at=at)


def mark_failed(entry: OutboxEntry, error: str, *, max_retry: int) -> OutboxEntry:
    """Record a failed publish attempt.

    Increments retry_count and stores the (truncated) error. The record goes
    back to PENDING for the next cycle, or to FAILED once retry_count reaches
    max_retry.
    """
    retry_count = entry.retry_count + 1
    target = OutboxStatus.FAILED if retry_count >= max_retry else OutboxStatus.PENDING
    _check(entry, target)
    return replace(
        entry,
        status=target,
        retry_count=retry_count,
        last_error=error[:MAX_ERROR_LENGTH],
    )


__all__ = [
    "MAX_ERROR_LENGTH",
    "OutboxEntry",
    "as_utc",
    "mark_failed",
    "mark_processing",
    "mark_sent",
    "utc_now",
]
