"""APScheduler integration for the outbox relay.

Two jobs run in the relay process:
- outbox_drain: one drain cycle every `OUTBOX_POLLER__INTERVAL_MS`
- outbox_cleanup: retention sweep on the `OUTBOX_CLEANUP__SCHEDULE` cron

Both use coalesce and max_instances=1, so a slow cycle delays the next one
instead of overlapping it. Job failures are logged here and never stop the
scheduler; the other job keeps running.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from apscheduler.events import EVENT_JOB_ERROR, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

if TYPE_CHECKING:
    from apscheduler.job import Job

    from outbox_relay.core.settings.outbox import OutboxSettings
    from outbox_relay.infra.events.outbox.processor import DrainResult, OutboxDrainer
    from outbox_relay.infra.events.outbox.sweeper import RetentionSweeper

logger = logging.getLogger(__name__)

DRAIN_JOB_ID = "outbox_drain"
CLEANUP_JOB_ID = "outbox_cleanup"

_relay: OutboxRelay | None = None


def _next_run_iso(job: Job) -> str | None:
    # Jobs added before start() have no next_run_time yet
    next_run = getattr(job, "next_run_time", None)
    return next_run.isoformat() if next_run else None


class OutboxRelay:
    """Owns the scheduler that drives the drainer and the sweeper."""

    def __init__(
        self,
        drainer: OutboxDrainer,
        sweeper: RetentionSweeper,
        settings: OutboxSettings,
    ) -> None:
        self.drainer = drainer
        self.sweeper = sweeper
        self.settings = settings
        self.scheduler = AsyncIOScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": True,  # Combine multiple pending executions into one
                "max_instances": 1,  # Only one instance of each job at a time
                "misfire_grace_time": 60,
            },
        )
        self.scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)
        self.last_errors: dict[str, str] = {}
        self._setup_jobs()

    def _setup_jobs(self) -> None:
        poller = self.settings.poller
        if poller.enabled:
            self.scheduler.add_job(
                func=self._run_drain,
                trigger=IntervalTrigger(seconds=poller.interval_seconds),
                id=DRAIN_JOB_ID,
                name="Drain outbox",
                replace_existing=True,
            )
        else:
            logger.info("Outbox poller disabled, drain job not scheduled")

        self.scheduler.add_job(
            func=self._run_cleanup,
            trigger=CronTrigger.from_crontab(self.settings.cleanup.schedule, timezone="UTC"),
            id=CLEANUP_JOB_ID,
            name="Delete delivered outbox records past retention",
            replace_existing=True,
        )

    async def _run_drain(self) -> DrainResult:
        return await self.drainer.drain()

    async def _run_cleanup(self) -> int:
        return await self.sweeper.sweep()

    def _on_job_error(self, event: JobExecutionEvent) -> None:
        self.last_errors[event.job_id] = repr(event.exception)
        logger.error(
            "Scheduled outbox job failed",
            extra={"job_id": event.job_id, "error": repr(event.exception)},
        )

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self) -> None:
        """Start the scheduler. Must be called with a running event loop."""
        if self.scheduler.running:
            logger.warning("Outbox relay is already running")
            return
        self.scheduler.start()
        logger.info(
            "Outbox relay started",
            extra={
                "jobs": [job.id for job in self.scheduler.get_jobs()],
                "interval_ms": self.settings.poller.interval_ms,
                "batch_size": self.settings.poller.batch_size,
                "cleanup_schedule": self.settings.cleanup.schedule,
            },
        )

    def stop(self, *, wait: bool = True) -> None:
        """Stop the scheduler; no new cycles start afterwards."""
        if not self.scheduler.running:
            logger.debug("Outbox relay is not running")
            return
        self.scheduler.shutdown(wait=wait)
        logger.info("Outbox relay stopped")

    def get_job_status(self) -> list[dict[str, Any]]:
        """Get status of the relay's jobs.

        Returns:
            List of job information dictionaries.
        """
        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": _next_run_iso(job),
                "trigger": str(job.trigger),
                "last_error": self.last_errors.get(job.id),
            }
            for job in self.scheduler.get_jobs()
        ]


async def start_outbox_relay(
    *,
    settings: OutboxSettings | None = None,
    publisher: Any | None = None,
) -> OutboxRelay | None:
    """Build and start the global relay from settings.

    Args:
        settings: Outbox settings, loaded from the environment by default
        publisher: Message publisher; a RabbitMQ publisher on the shared
            broker by default

    Returns:
        The running relay, or None if no broker is configured.
    """
    global _relay

    from outbox_relay.core.settings import get_outbox_settings, get_rabbit_settings
    from outbox_relay.infra.database.session import get_session_factory
    from outbox_relay.infra.events.outbox.processor import OutboxDrainer
    from outbox_relay.infra.events.outbox.sweeper import RetentionSweeper

    if _relay is not None and _relay.running:
        logger.warning("Outbox relay already running")
        return _relay

    settings = settings or get_outbox_settings()

    if publisher is None:
        from outbox_relay.infra.messaging.broker import start_broker
        from outbox_relay.infra.messaging.publisher import RabbitMessagePublisher

        broker = await start_broker()
        if broker is None:
            logger.info("RabbitMQ not configured, skipping outbox relay")
            return None
        publisher = RabbitMessagePublisher(broker, get_rabbit_settings().exchange_name)

    session_factory = get_session_factory()
    _relay = OutboxRelay(
        OutboxDrainer.from_settings(settings, session_factory, publisher),
        RetentionSweeper.from_settings(settings, session_factory),
        settings,
    )
    _relay.start()
    return _relay


async def stop_outbox_relay() -> None:
    """Stop the global relay."""
    global _relay

    if _relay is not None:
        _relay.stop()
        _relay = None


def get_outbox_relay() -> OutboxRelay | None:
    """Get the global relay instance."""
    return _relay


__all__ = [
    "CLEANUP_JOB_ID",
    "DRAIN_JOB_ID",
    "OutboxRelay",
    "get_outbox_relay",
    "start_outbox_relay",
    "stop_outbox_relay",
]
