"""Database infrastructure."""

from outbox_relay.infra.database.session import (
    dispose_engine,
    ensure_outbox_table,
    get_async_session,
    get_engine,
    get_session_factory,
)

__all__ = [
    "dispose_engine",
    "ensure_outbox_table",
    "get_async_session",
    "get_engine",
    "get_session_factory",
]
