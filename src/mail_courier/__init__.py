# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""mail-courier: outbound delivery of email and storage requests.

Two transports carry the same payloads:

- a framed request/response TCP client for NestJS-style microservices
  (:mod:`mail_courier.transport`);
- an idempotent event publisher writing enveloped records to Kafka
  (:mod:`mail_courier.events`).

:mod:`mail_courier.service` pairs them per payload kind and wraps sends in
the exponential backoff of :mod:`mail_courier.retry`.
"""

from .config_loader import CourierConfig, KafkaConfig, RetryConfig, TcpConfig, load_config
from .events import EventEnvelope, EventPublisher
from .models import (
    EmailPayload,
    EmailServiceResponse,
    FileDeletePayload,
    FileUploadPayload,
    MultipleRecipients,
    SingleRecipient,
    StorageServiceResponse,
)
from .retry import RetryPolicy, send_with_retry
from .service import (
    DeliveryService,
    TransportMode,
    email_service,
    storage_delete_service,
    storage_upload_service,
)
from .transport import Err, FramedTcpClient, Ok, TransportError, TransportErrorKind

__version__ = "0.3.0"

__all__ = [
    "CourierConfig",
    "DeliveryService",
    "EmailPayload",
    "EmailServiceResponse",
    "Err",
    "EventEnvelope",
    "EventPublisher",
    "FileDeletePayload",
    "FileUploadPayload",
    "FramedTcpClient",
    "KafkaConfig",
    "MultipleRecipients",
    "Ok",
    "RetryConfig",
    "RetryPolicy",
    "SingleRecipient",
    "StorageServiceResponse",
    "TcpConfig",
    "TransportError",
    "TransportErrorKind",
    "TransportMode",
    "email_service",
    "load_config",
    "send_with_retry",
    "storage_delete_service",
    "storage_upload_service",
]
