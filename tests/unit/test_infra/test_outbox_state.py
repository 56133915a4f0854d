"""Unit tests for outbox snapshot transitions."""
from __future__ import annotations

from datetime import UTC, datetime

import pytest

from outbox_relay.core.exceptions import InvalidTransitionError
from outbox_relay.infra.events.outbox.models import OutboxStatus
from outbox_relay.infra.events.outbox.state import (
    MAX_ERROR_LENGTH,
    OutboxEntry,
    as_utc,
    mark_failed,
    mark_processing,
    mark_sent,
)
from tests.utils import make_record

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)


def _entry(**overrides) -> OutboxEntry:
    values = {
        "id": 1,
        "aggregate_type": "Order",
        "aggregate_id": "1",
        "event_type": "market.order.payment_requested",
        "topic": "market.order.payment-requested",
        "payload": "{}",
        "status": OutboxStatus.PENDING,
        "created_at": NOW,
    }
    values.update(overrides)
    return OutboxEntry(**values)


class TestTransitions:
    """PENDING -> PROCESSING -> {SENT, PENDING, FAILED}."""

    def test_mark_processing(self):
        entry = mark_processing(_entry())

        assert entry.status is OutboxStatus.PROCESSING

    def test_mark_sent_sets_sent_at(self):
        """SENT carries sent_at and leaves retry bookkeeping alone."""
        entry = mark_sent(mark_processing(_entry()), at=NOW)

        assert entry.status is OutboxStatus.SENT
        assert entry.sent_at == NOW
        assert entry.retry_count == 0

    def test_mark_failed_with_retries_left_returns_to_pending(self):
        entry = mark_failed(mark_processing(_entry(retry_count=1)), "timeout", max_retry=5)

        assert entry.status is OutboxStatus.PENDING
        assert entry.retry_count == 2
        assert entry.last_error == "timeout"
        assert entry.sent_at is None

    def test_mark_failed_exhausts_retries(self):
        """The fifth failure with max_retry=5 parks the record."""
        entry = mark_failed(mark_processing(_entry(retry_count=4)), "refused", max_retry=5)

        assert entry.status is OutboxStatus.FAILED
        assert entry.retry_count == 5

    def test_error_is_truncated(self):
        entry = mark_failed(mark_processing(_entry()), "x" * 5000, max_retry=5)

        assert entry.last_error is not None
        assert len(entry.last_error) == MAX_ERROR_LENGTH

    def test_transitions_do_not_mutate_input(self):
        original = _entry()

        mark_processing(original)

        assert original.status is OutboxStatus.PENDING

    @pytest.mark.parametrize(
        ("status", "transition"),
        [
            (OutboxStatus.PENDING, lambda e: mark_sent(e, at=NOW)),
            (OutboxStatus.PENDING, lambda e: mark_failed(e, "err", max_retry=5)),
            (OutboxStatus.SENT, mark_processing),
            (OutboxStatus.FAILED, mark_processing),
            (OutboxStatus.PROCESSING, mark_processing),
        ],
    )
    def test_illegal_transitions_raise(self, status, transition):
        with pytest.raises(InvalidTransitionError):
            transition(_entry(status=status))


class TestOutboxEntry:
    """Tests for snapshots built from ORM records."""

    def test_from_record_normalizes_naive_datetimes(self):
        """SQLite returns naive datetimes; snapshots are always UTC-aware."""
        record = make_record(id=3, created_at=datetime(2025, 1, 1, 8, 0))

        entry = OutboxEntry.from_record(record)

        assert entry.id == 3
        assert entry.status is OutboxStatus.PENDING
        assert entry.created_at == datetime(2025, 1, 1, 8, 0, tzinfo=UTC)

    def test_payload_bytes(self):
        assert _entry(payload='{"a": "é"}').payload_bytes == '{"a": "é"}'.encode()

    def test_as_utc_keeps_aware_values(self):
        assert as_utc(NOW) is NOW
        assert as_utc(None) is None

    def test_terminal_statuses(self):
        assert OutboxStatus.SENT.is_terminal
        assert OutboxStatus.FAILED.is_terminal
        assert not OutboxStatus.PENDING.is_terminal
        assert not OutboxStatus.PROCESSING.is_terminal
