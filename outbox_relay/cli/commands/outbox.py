"""Outbox operator commands.

This module provides CLI commands for:
- Running the relay (drain + retention jobs) until interrupted
- Running a single drain cycle or retention sweep
- Inspecting record counts by status
- Requeueing FAILED records
- Creating the outbox table
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import json
import signal
import sys
from typing import TYPE_CHECKING

import click
from sqlalchemy.exc import SQLAlchemyError

from outbox_relay.cli.utils import (
    coro,
    count_table,
    error,
    header,
    info,
    key_values,
    success,
    warning,
)
from outbox_relay.core.exceptions import OutboxError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


@asynccontextmanager
async def _engine_scope() -> AsyncIterator[None]:
    """Dispose the shared engine before the command's event loop closes."""
    from outbox_relay.infra.database.session import dispose_engine

    try:
        yield
    finally:
        await dispose_engine()


@click.command(name="run")
@coro
async def run() -> None:
    """Run the outbox relay until interrupted (SIGINT/SIGTERM)."""
    from outbox_relay.infra.database.session import check_database
    from outbox_relay.infra.messaging.broker import stop_broker
    from outbox_relay.tasks.scheduler import start_outbox_relay, stop_outbox_relay

    header("Outbox Relay")

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    async with _engine_scope():
        try:
            await check_database()
            relay = await start_outbox_relay()
        except (ConnectionError, OutboxError, SQLAlchemyError) as e:
            error(f"Failed to start relay: {e}")
            sys.exit(1)

        if relay is None:
            error("RabbitMQ is not configured (set RABBIT_ENABLED / RABBIT_AMQP_URI)")
            sys.exit(1)

        for job in relay.get_job_status():
            info(f"{job['id']}: {job['trigger']}")
        success("Relay running, press Ctrl+C to stop")

        try:
            await stop_event.wait()
        finally:
            await stop_outbox_relay()
            await stop_broker()
            info("Relay stopped")


@click.command(name="drain")
@coro
async def drain() -> None:
    """Run one drain cycle and print its result."""
    from outbox_relay.core.settings import get_outbox_settings, get_rabbit_settings
    from outbox_relay.infra.database.session import get_session_factory
    from outbox_relay.infra.events.outbox.processor import OutboxDrainer
    from outbox_relay.infra.messaging.broker import broker_context
    from outbox_relay.infra.messaging.publisher import RabbitMessagePublisher

    header("Outbox Drain")

    async with _engine_scope():
        try:
            async with broker_context() as broker:
                if broker is None:
                    error("RabbitMQ is not configured")
                    sys.exit(1)

                publisher = RabbitMessagePublisher(broker, get_rabbit_settings().exchange_name)
                drainer = OutboxDrainer.from_settings(
                    get_outbox_settings(), get_session_factory(), publisher
                )
                result = await drainer.drain()
        except (ConnectionError, OutboxError) as e:
            error(f"Drain failed: {e}")
            sys.exit(1)

    key_values(result.as_dict())
    if result.failed:
        warning(f"{result.failed} record(s) parked as FAILED")
    success(f"Drained {result.sent}/{result.fetched} record(s)")


@click.command(name="sweep")
@coro
async def sweep() -> None:
    """Delete SENT records older than the retention window."""
    from outbox_relay.core.settings import get_outbox_settings
    from outbox_relay.infra.database.session import get_session_factory
    from outbox_relay.infra.events.outbox.sweeper import RetentionSweeper

    header("Outbox Retention Sweep")

    async with _engine_scope():
        settings = get_outbox_settings()
        sweeper = RetentionSweeper.from_settings(settings, get_session_factory())
        try:
            deleted = await sweeper.sweep()
        except OutboxError as e:
            error(f"Sweep failed: {e}")
            sys.exit(1)

    success(f"Deleted {deleted} record(s) older than {settings.cleanup.retention_days} day(s)")


@click.command(name="stats")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@coro
async def stats(output_format: str) -> None:
    """Show outbox record counts by status."""
    from outbox_relay.infra.database.session import get_async_session
    from outbox_relay.infra.events.outbox.repository import OutboxRepository

    async with _engine_scope():
        try:
            async with get_async_session() as session:
                counts = await OutboxRepository().count_by_status(session)
        except OutboxError as e:
            error(f"Failed to read outbox: {e}")
            sys.exit(1)

    rows = {status.value: count for status, count in counts.items()}

    if output_format == "json":
        click.echo(json.dumps(rows, indent=2))
        return

    header("Outbox Records")
    count_table(rows)


@click.command(name="requeue")
@click.option(
    "--id",
    "record_ids",
    type=int,
    multiple=True,
    help="Record id to requeue (repeatable). Defaults to every FAILED record.",
)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@coro
async def requeue(record_ids: tuple[int, ...], yes: bool) -> None:
    """Move FAILED records back to PENDING for one more delivery attempt."""
    from outbox_relay.infra.database.session import get_async_session
    from outbox_relay.infra.events.outbox.repository import OutboxRepository

    if not record_ids and not yes:
        click.confirm("Requeue ALL failed outbox records?", abort=True)

    async with _engine_scope():
        try:
            async with get_async_session() as session, session.begin():
                count = await OutboxRepository().requeue_failed(
                    session, list(record_ids) if record_ids else None
                )
        except (OutboxError, SQLAlchemyError) as e:
            error(f"Requeue failed: {e}")
            sys.exit(1)

    if count == 0:
        warning("No FAILED records matched")
        return
    success(f"Requeued {count} record(s)")


@click.command(name="init-db")
@coro
async def init_db() -> None:
    """Create the outbox_record table if it does not exist."""
    from outbox_relay.infra.database.session import ensure_outbox_table, get_database_url

    async with _engine_scope():
        try:
            await ensure_outbox_table()
        except SQLAlchemyError as e:
            error(f"Failed to create outbox table: {e}")
            sys.exit(1)

    success(f"Outbox table ready ({get_database_url().split('://', 1)[0]})")
