"""Broker publishing port used by the drainer and the direct router path."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from faststream.rabbit import ExchangeType, RabbitExchange

if TYPE_CHECKING:
    from faststream.rabbit import RabbitBroker

logger = logging.getLogger(__name__)


@runtime_checkable
class MessagePublisher(Protocol):
    """Sends one message and returns once the broker has accepted it.

    Implementations raise on rejection or transport failure. Callers bound
    the wait with their own timeout.
    """

    async def send(
        self,
        topic: str,
        key: str,
        payload: bytes,
        *,
        event_type: str | None = None,
    ) -> None: ...


class RabbitMessagePublisher:
    """Publishes to a durable RabbitMQ topic exchange.

    The topic becomes the routing key and the aggregate key travels in the
    `x-aggregate-id` header. Messages are persistent, and the channel's
    publisher confirms make `send` wait for the broker ack.
    """

    def __init__(self, broker: RabbitBroker, exchange_name: str = "domain-events") -> None:
        self.broker = broker
        self.exchange = RabbitExchange(exchange_name, type=ExchangeType.TOPIC, durable=True)
        self._declared = False

    async def send(
        self,
        topic: str,
        key: str,
        payload: bytes,
        *,
        event_type: str | None = None,
    ) -> None:
        if not self._declared:
            await self.broker.declare_exchange(self.exchange)
            self._declared = True

        headers = {"x-aggregate-id": key}
        if event_type is not None:
            headers["x-event-type"] = event_type

        await self.broker.publish(
            payload,
            exchange=self.exchange,
            routing_key=topic,
            headers=headers,
            persist=True,
            content_type="application/json",
        )
        logger.debug(
            "Published message",
            extra={"exchange": self.exchange.name, "routing_key": topic, "key": key},
        )


__all__ = ["MessagePublisher", "RabbitMessagePublisher"]
