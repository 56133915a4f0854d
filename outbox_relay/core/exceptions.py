"""Outbox exception hierarchy.

Exceptions carry a message plus an optional details mapping so log records
and CLI output can show the context of a failure without re-parsing text.

Recoverable (handled inside a drain cycle):
    PublishError, VersionConflictError

Fatal to the current operation:
    SerializationError, StoreError

Programming errors:
    TransactionRequiredError, DuplicateEventTypeError, InvalidTransitionError
"""

from __future__ import annotations

from typing import Any


class OutboxError(Exception):
    """Base exception for outbox operations."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize outbox error.

        Args:
            message: Error description
            details: Additional context about the error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Format error message with details."""
        if self.details:
            details_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class SerializationError(OutboxError):
    """Event payload could not be encoded.

    Raised inside the caller's transaction, so the business mutation and the
    outbox insert are rolled back together.
    """

    def __init__(self, event_type: str, reason: str) -> None:
        self.event_type = event_type
        super().__init__(
            f"Failed to serialize event '{event_type}'",
            details={"event_type": event_type, "reason": reason},
        )


class StoreError(OutboxError):
    """Insert, fetch, update or delete against the outbox table failed."""

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        super().__init__(
            f"Outbox store operation '{operation}' failed",
            details={"operation": operation, "reason": reason},
        )


class PublishError(OutboxError):
    """Broker rejected, timed out or failed to transport a message."""

    def __init__(self, topic: str, reason: str) -> None:
        self.topic = topic
        self.reason = reason
        super().__init__(
            f"Failed to publish to '{topic}': {reason}",
            details={"topic": topic},
        )


class VersionConflictError(OutboxError):
    """Stored version no longer matches the version the writer read.

    Another drainer instance updated the same row concurrently.
    """

    def __init__(self, record_id: int, expected_version: int) -> None:
        self.record_id = record_id
        self.expected_version = expected_version
        super().__init__(
            "Outbox record was modified concurrently",
            details={"record_id": record_id, "expected_version": expected_version},
        )


class TransactionRequiredError(OutboxError):
    """Outbox write attempted without an active transaction."""

    def __init__(self, event_type: str) -> None:
        super().__init__(
            "Outbox writes must run inside the caller's open transaction",
            details={"event_type": event_type},
        )


class DuplicateEventTypeError(OutboxError, ValueError):
    """A resolver is already registered for this event type."""

    def __init__(self, event_type: str, existing: str) -> None:
        super().__init__(
            f"Event type '{event_type}' already registered",
            details={"event_type": event_type, "existing": existing},
        )


class InvalidTransitionError(OutboxError):
    """Requested status change is not an edge of the outbox state machine."""

    def __init__(self, record_id: int | None, current: str, target: str) -> None:
        super().__init__(
            f"Cannot transition outbox record from {current} to {target}",
            details={"record_id": record_id},
        )


__all__ = [
    "DuplicateEventTypeError",
    "InvalidTransitionError",
    "OutboxError",
    "PublishError",
    "SerializationError",
    "StoreError",
    "TransactionRequiredError",
    "VersionConflictError",
]
