"""RabbitMQ broker setup using FastStream.

The relay only publishes, so a bare RabbitBroker is enough. It is created on
first use from RabbitSettings and connected through start_broker() or
broker_context().

Usage Patterns:
- Long-running relay: `await start_broker()` at startup, `await stop_broker()`
  at shutdown
- One-shot commands: `async with broker_context() as broker: ...`
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import logging
from typing import TYPE_CHECKING

from outbox_relay.core.settings import get_rabbit_settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from faststream.rabbit import RabbitBroker

logger = logging.getLogger(__name__)

broker: RabbitBroker | None = None
_not_configured_logged = False


def get_broker() -> RabbitBroker | None:
    """Get the shared broker, creating it on first use.

    Returns:
        RabbitBroker instance or None if RabbitMQ is not configured.
    """
    global broker, _not_configured_logged

    if broker is not None:
        return broker

    rabbit_settings = get_rabbit_settings()
    if not rabbit_settings.is_configured:
        if not _not_configured_logged:
            logger.warning("RabbitMQ not configured - broker publishing disabled")
            _not_configured_logged = True
        return None

    from faststream.rabbit import RabbitBroker

    broker = RabbitBroker(
        rabbit_settings.get_url(),
        graceful_timeout=rabbit_settings.graceful_timeout,
        logger=logger,
    )
    return broker


def _is_running(instance: RabbitBroker) -> bool:
    return bool(getattr(instance, "running", False))


async def _connect(instance: RabbitBroker) -> None:
    rabbit_settings = get_rabbit_settings()
    try:
        # Wrap connection with timeout to prevent indefinite blocking
        await asyncio.wait_for(
            instance.start(),
            timeout=rabbit_settings.connection_timeout,
        )
    except TimeoutError:
        error_msg = f"RabbitMQ connection timeout after {rabbit_settings.connection_timeout}s"
        logger.error(
            error_msg,
            extra={
                "host": rabbit_settings.host,
                "connection_timeout": rabbit_settings.connection_timeout,
            },
        )
        raise ConnectionError(error_msg) from None


async def start_broker() -> RabbitBroker | None:
    """Start the RabbitMQ broker connection.

    Returns immediately if the broker is already running.

    Returns:
        The connected broker, or None if RabbitMQ is not configured.

    Raises:
        ConnectionError: If the connection timed out.
    """
    instance = get_broker()
    if instance is None:
        logger.warning("RabbitMQ not configured, skipping broker startup")
        return None

    if _is_running(instance):
        logger.debug("RabbitMQ broker already running")
        return instance

    logger.info(
        "Starting RabbitMQ broker",
        extra={"host": get_rabbit_settings().host},
    )
    try:
        await _connect(instance)
    except ConnectionError:
        raise
    except Exception as e:
        logger.exception("Failed to start RabbitMQ broker", extra={"error": str(e)})
        raise
    logger.info("RabbitMQ broker started successfully")
    return instance


async def stop_broker() -> None:
    """Stop the RabbitMQ broker connection."""
    global broker

    if broker is None:
        logger.debug("RabbitMQ broker not created, skipping shutdown")
        return

    logger.info("Stopping RabbitMQ broker")

    try:
        await broker.close()
        logger.info("RabbitMQ broker stopped successfully")
    except Exception as e:
        logger.exception("Error stopping RabbitMQ broker", extra={"error": str(e)})
    finally:
        broker = None


@asynccontextmanager
async def broker_context() -> AsyncIterator[RabbitBroker | None]:
    """Context manager for scoped broker access from one-shot commands.

    Only closes the broker if it was started by this context; a broker that
    was already running (e.g., the relay's) is left connected.

    Yields:
        RabbitBroker instance or None if not configured.

    Example:
        async with broker_context() as broker:
            if broker is not None:
                publisher = RabbitMessagePublisher(broker, "domain-events")
                await publisher.send("order.created", "42", b"{}")
    """
    instance = get_broker()

    if instance is None:
        logger.warning("RabbitMQ not configured, broker_context yielding None")
        yield None
        return

    was_running = _is_running(instance)
    if not was_running:
        await _connect(instance)
        logger.debug("Broker connected via context manager")
    else:
        logger.debug("Broker already running, reusing existing connection")

    try:
        yield instance
    finally:
        if not was_running:
            try:
                await instance.close()
                logger.debug("Broker disconnected via context manager")
            except Exception as e:
                logger.warning("Error closing broker in context manager", extra={"error": str(e)})


__all__ = ["broker_context", "get_broker", "start_broker", "stop_broker"]
