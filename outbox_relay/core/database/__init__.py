"""Declarative base shared by outbox models."""

from outbox_relay.core.database.base import Base, IntegerPKMixin

__all__ = ["Base", "IntegerPKMixin"]
