"""Retention sweep for delivered outbox records.

Scheduled: Daily at 3 AM UTC by default (`OUTBOX_CLEANUP__SCHEDULE`).
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
import logging
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from outbox_relay.core.exceptions import StoreError
from outbox_relay.infra.events.outbox.models import OutboxStatus
from outbox_relay.infra.events.outbox.repository import OutboxRepository
from outbox_relay.infra.events.outbox.state import utc_now
from outbox_relay.infra.metrics.prometheus import outbox_records_swept_total

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from outbox_relay.core.settings.outbox import OutboxSettings

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """Deletes SENT records whose sent_at is older than the retention window.

    PENDING, PROCESSING and FAILED records are never deleted.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        repository: OutboxRepository | None = None,
        *,
        retention_days: int = 7,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.session_factory = session_factory
        self.repository = repository or OutboxRepository()
        self.retention = timedelta(days=retention_days)
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: OutboxSettings,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> RetentionSweeper:
        return cls(session_factory, retention_days=settings.cleanup.retention_days)

    async def sweep(self) -> int:
        """Delete expired SENT records in a dedicated transaction.

        Returns:
            Number of records deleted

        Raises:
            StoreError: If the delete or its commit failed
        """
        now = self._clock()
        try:
            async with self.session_factory() as session, session.begin():
                deleted = await self.repository.delete_older_than(
                    session,
                    age=self.retention,
                    status=OutboxStatus.SENT,
                    now=now,
                )
        except StoreError:
            logger.exception("Outbox retention sweep failed")
            raise
        except SQLAlchemyError as exc:
            logger.exception("Outbox retention sweep failed")
            raise StoreError("delete_older_than", str(exc)) from exc

        outbox_records_swept_total.inc(deleted)
        logger.info(
            "Outbox retention sweep completed",
            extra={
                "deleted_count": deleted,
                "retention_days": self.retention.days,
                "cutoff": (now - self.retention).isoformat(),
            },
        )
        return deleted


__all__ = ["RetentionSweeper"]
