# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Versioned event envelope wrapped around published payloads."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

PayloadT = TypeVar("PayloadT")


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with a ``Z`` suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


class EventEnvelope(BaseModel, Generic[PayloadT]):
    """Metadata wrapper for an event record.

    Attributes:
        message_id: Unique id of the logical message (``messageId``).
        timestamp: Creation time, ISO-8601 UTC.
        event_type: Routing type, e.g. ``evt.email.message.send.v1``.
        event_version: Schema version of the payload.
        source: Producing client identifier.
        tenant_id: Optional tenant, serialized as ``null`` when absent.
        payload: The caller's payload.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = Field(default_factory=utc_timestamp)
    event_type: str
    event_version: int = 1
    source: str
    tenant_id: str | None = None
    payload: PayloadT

    @field_serializer("payload")
    def _serialize_payload(self, payload: Any) -> Any:
        if isinstance(payload, BaseModel):
            return payload.model_dump(mode="json", by_alias=True, exclude_none=True)
        return payload

    def to_record(self) -> dict[str, Any]:
        """JSON-compatible record with every envelope field present."""
        return self.model_dump(mode="json", by_alias=True)
