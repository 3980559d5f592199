# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Delivery service: one payload kind, two transports, retries.

A :class:`DeliveryService` pairs a framed TCP client and an event publisher
for the same payload kind. Callers choose the transport per send with
:class:`TransportMode`; both paths collapse to a boolean so the retry
orchestrator treats them alike.

Example::

    service = email_service(load_config())
    async with service:
        ok = await service.send_with_retry(payload, mode=TransportMode.KAFKA)
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from enum import Enum
from typing import Any, Generic, TypeVar

from .config_loader import CourierConfig, RetryConfig
from .events import (
    EmailEventProfile,
    EventPublisher,
    StorageDeleteEventProfile,
    StorageUploadEventProfile,
)
from .logger import get_logger
from .metrics import CourierMetrics
from .models import EmailPayload, FileDeletePayload, FileUploadPayload
from .retry import RetryPolicy, send_with_retry
from .transport import (
    EmailCodec,
    FramedTcpClient,
    Ok,
    StorageDeleteCodec,
    StorageUploadCodec,
)

PayloadT = TypeVar("PayloadT")

logger = get_logger("service")


def response_success(response: Any) -> bool:
    """Success flag of a decoded response; absent means success."""
    if isinstance(response, Mapping):
        return bool(response.get("success", True))
    return bool(getattr(response, "success", True))


class TransportMode(str, Enum):
    """Transport used for a send."""

    TCP = "tcp"
    KAFKA = "kafka"


def retry_policy(config: RetryConfig) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=config.max_attempts,
        base_delay=config.base_delay,
        max_delay=config.max_delay,
        jitter=config.jitter,
    )


class DeliveryService(Generic[PayloadT]):
    """Sends payloads of one kind over TCP or the event topic.

    Attributes:
        tcp_client: Framed request/response client.
        publisher: Event publisher owning the broker connection.
        policy: Retry schedule used by :meth:`send_with_retry`.
        accept_undecodable_response: Whether a TCP response that arrived but
            could not be decoded counts as delivered.
    """

    def __init__(
        self,
        tcp_client: FramedTcpClient,
        publisher: EventPublisher,
        policy: RetryPolicy | None = None,
        accept_undecodable_response: bool = True,
        metrics: CourierMetrics | None = None,
    ):
        self.tcp_client = tcp_client
        self.publisher = publisher
        self.policy = policy or RetryPolicy()
        self.accept_undecodable_response = accept_undecodable_response
        self.metrics = metrics

    async def start(self) -> None:
        await self.publisher.start()

    async def stop(self) -> None:
        await self.publisher.stop()

    async def __aenter__(self) -> DeliveryService[PayloadT]:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def send_tcp(self, payload: PayloadT) -> bool:
        """Single framed TCP exchange, reported as a boolean."""
        result = await self.tcp_client.send(payload)
        if isinstance(result, Ok):
            success = response_success(result.value)
            if not success:
                logger.warning(
                    "%s rejected by service: %r", self.tcp_client.pattern, result.value
                )
            return success
        if result.reached_peer and self.accept_undecodable_response:
            logger.warning(
                "%s response could not be decoded, counting as delivered", self.tcp_client.pattern
            )
            return True
        return False

    async def send(
        self,
        payload: PayloadT,
        tenant_id: str | None = None,
        mode: TransportMode = TransportMode.TCP,
        message_id: str | None = None,
        key: str | None = None,
    ) -> bool:
        """Single attempt over the selected transport."""
        if TransportMode(mode) is TransportMode.KAFKA:
            return await self.publisher.publish(
                payload, tenant_id=tenant_id, key=key, message_id=message_id
            )
        return await self.send_tcp(payload)

    async def send_with_retry(
        self,
        payload: PayloadT,
        tenant_id: str | None = None,
        mode: TransportMode = TransportMode.TCP,
        max_attempts: int | None = None,
        key: str | None = None,
    ) -> bool:
        """Send with exponential backoff.

        One message id is generated for the logical send and reused by every
        publish attempt, so a retried event keeps its identity downstream.
        """
        mode = TransportMode(mode)
        message_id = str(uuid.uuid4())

        async def attempt() -> bool:
            return await self.send(payload, tenant_id, mode, message_id=message_id, key=key)

        if mode is TransportMode.KAFKA:
            label = self.publisher.profile.event_type
        else:
            label = self.tcp_client.pattern
        return await send_with_retry(
            attempt,
            max_attempts,
            policy=self.policy,
            operation=f"{mode.value}:{label}",
            metrics=self.metrics,
        )


def _build(
    config: CourierConfig,
    codec: Any,
    profile: Any,
    tcp_section: str,
    kafka_section: str,
    metrics: CourierMetrics | None,
) -> DeliveryService:
    tcp_config = getattr(config, tcp_section)
    return DeliveryService(
        FramedTcpClient(codec, tcp_config, metrics=metrics),
        EventPublisher(profile, getattr(config, kafka_section), metrics=metrics),
        policy=retry_policy(config.retry),
        accept_undecodable_response=tcp_config.accept_undecodable_response,
        metrics=metrics,
    )


def email_service(
    config: CourierConfig, metrics: CourierMetrics | None = None
) -> DeliveryService[EmailPayload]:
    return _build(
        config, EmailCodec(config.tcp.strict_success), EmailEventProfile(), "tcp", "kafka", metrics
    )


def storage_upload_service(
    config: CourierConfig, metrics: CourierMetrics | None = None
) -> DeliveryService[FileUploadPayload]:
    return _build(
        config,
        StorageUploadCodec(config.storage_tcp.strict_success),
        StorageUploadEventProfile(),
        "storage_tcp",
        "storage_kafka",
        metrics,
    )


def storage_delete_service(
    config: CourierConfig, metrics: CourierMetrics | None = None
) -> DeliveryService[FileDeletePayload]:
    return _build(
        config,
        StorageDeleteCodec(config.storage_tcp.strict_success),
        StorageDeleteEventProfile(),
        "storage_tcp",
        "storage_kafka",
        metrics,
    )


__all__ = [
    "DeliveryService",
    "TransportMode",
    "email_service",
    "response_success",
    "retry_policy",
    "storage_delete_service",
    "storage_upload_service",
]
