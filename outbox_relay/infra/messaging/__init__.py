"""Messaging infrastructure (RabbitMQ via FastStream)."""

from outbox_relay.infra.messaging.publisher import MessagePublisher, RabbitMessagePublisher

__all__ = ["MessagePublisher", "RabbitMessagePublisher"]
