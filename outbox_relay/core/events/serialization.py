"""Canonical JSON encoding of event payloads."""

from __future__ import annotations

import dataclasses
from typing import Any

from pydantic import BaseModel, PydanticUserError, TypeAdapter
from pydantic_core import PydanticSerializationError

from outbox_relay.core.events.base import event_type_of
from outbox_relay.core.exceptions import SerializationError

_attributes_adapter: TypeAdapter[dict[str, Any]] = TypeAdapter(dict[str, Any])


def serialize_event(event: object) -> str:
    """Encode an event as JSON text.

    Pydantic models (including DomainEvent) use their own serializer and
    dataclasses go through a TypeAdapter. Any other object is encoded from
    its instance attributes.

    Raises:
        SerializationError: If the event contains values that have no JSON
            representation, or has no attributes to encode.
    """
    try:
        if isinstance(event, BaseModel):
            return event.model_dump_json()
        if dataclasses.is_dataclass(event):
            return TypeAdapter(type(event)).dump_json(event).decode("utf-8")
        return _attributes_adapter.dump_json(vars(event)).decode("utf-8")
    except (PydanticSerializationError, PydanticUserError, TypeError, ValueError) as exc:
        raise SerializationError(event_type_of(event), str(exc)) from exc


__all__ = ["serialize_event"]
