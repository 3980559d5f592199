# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Event envelope and publisher."""

from .envelope import EventEnvelope
from .profiles import (
    EmailEventProfile,
    PassthroughProfile,
    PublishProfile,
    StorageDeleteEventProfile,
    StorageUploadEventProfile,
)
from .publisher import EVENT_TYPE_HEADER, EventPublisher, producer_options

__all__ = [
    "EVENT_TYPE_HEADER",
    "EmailEventProfile",
    "EventEnvelope",
    "EventPublisher",
    "PassthroughProfile",
    "PublishProfile",
    "StorageDeleteEventProfile",
    "StorageUploadEventProfile",
    "producer_options",
]
