"""Prometheus metrics."""

from outbox_relay.infra.metrics.prometheus import REGISTRY

__all__ = ["REGISTRY"]
