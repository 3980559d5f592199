# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Publish profiles: per-event-kind capabilities used by the publisher.

A profile fixes the event type and version, normalizes the payload before
it is wrapped, and derives the partition key that keeps related events in
order.
"""

from __future__ import annotations

from typing import Any, Protocol, TypeVar

from ..models import EmailPayload, FileDeletePayload, FileUploadPayload

PayloadT = TypeVar("PayloadT")


class PublishProfile(Protocol[PayloadT]):
    """Capability set for one event kind."""

    event_type: str
    event_version: int

    def transform(self, payload: PayloadT) -> PayloadT:
        """Pure normalization applied before the envelope is built."""
        ...

    def key_for(self, payload: PayloadT) -> str | None:
        """Partition key derived from the transformed payload, or None."""
        ...


class PassthroughProfile:
    """Profile with no normalization and no key; useful for ad hoc events."""

    def __init__(self, event_type: str, event_version: int = 1):
        self.event_type = event_type
        self.event_version = event_version

    def transform(self, payload: Any) -> Any:
        return payload

    def key_for(self, payload: Any) -> str | None:
        return None


class EmailEventProfile:
    """Email send requests, ordered per recipient."""

    event_type = "evt.email.message.send.v1"
    event_version = 1

    def transform(self, payload: EmailPayload) -> EmailPayload:
        return payload.normalized()

    def key_for(self, payload: EmailPayload) -> str | None:
        # Multi-recipient sends have no natural key.
        return payload.to.routing_key()


class StorageUploadEventProfile:
    """File uploads, ordered per file name."""

    event_type = "evt.storage.file.upload.v1"
    event_version = 1

    def transform(self, payload: FileUploadPayload) -> FileUploadPayload:
        return payload

    def key_for(self, payload: FileUploadPayload) -> str | None:
        return payload.file_name


class StorageDeleteEventProfile:
    """File deletions, ordered per file id."""

    event_type = "evt.storage.file.delete.v1"
    event_version = 1

    def transform(self, payload: FileDeletePayload) -> FileDeletePayload:
        return payload

    def key_for(self, payload: FileDeletePayload) -> str | None:
        return payload.file_id


__all__ = [
    "EmailEventProfile",
    "PassthroughProfile",
    "PublishProfile",
    "StorageDeleteEventProfile",
    "StorageUploadEventProfile",
]
