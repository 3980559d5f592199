# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Event publisher with idempotent, per-key ordered delivery.

Payloads are normalized by a :class:`~mail_courier.events.profiles.PublishProfile`,
wrapped in an :class:`~mail_courier.events.envelope.EventEnvelope` and sent
to a Kafka topic through a long-lived producer.

The producer is always created with:

- ``enable_idempotence=True``: broker-side sequence numbers drop duplicate
  transmissions caused by producer retries;
- ``acks="all"``: a send is acknowledged only once every in-sync replica
  has the record;
- one in-flight batch per partition (aiokafka's sender never pipelines
  batches of the same partition), which keeps records of one key in order.

Together they give exactly-once, in-order production per key. They are not
exposed as configuration.

``publish`` never raises: any failure is logged and reported as ``False``.

Example::

    async with EventPublisher(EmailEventProfile(), KafkaConfig()) as publisher:
        ok = await publisher.publish(payload, tenant_id="acme")
"""

from __future__ import annotations

import asyncio
import uuid
from typing import TYPE_CHECKING, Any, Generic, Protocol, TypeVar

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError

from ..logger import get_logger
from ..transport.codec import dumps_compact
from .envelope import EventEnvelope
from .profiles import PublishProfile

if TYPE_CHECKING:
    from ..config_loader import KafkaConfig
    from ..metrics import CourierMetrics

PayloadT = TypeVar("PayloadT")

EVENT_TYPE_HEADER = "event-type"

# Time left for producer shutdown when the flush used up the budget.
MIN_STOP_TIMEOUT = 0.5

logger = get_logger("publisher")


class Producer(Protocol):
    """Subset of the aiokafka producer API used by the publisher."""

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def flush(self) -> None: ...

    async def send_and_wait(
        self,
        topic: str,
        value: bytes | None = None,
        key: bytes | None = None,
        headers: list[tuple[str, bytes]] | None = None,
    ) -> Any: ...


def producer_options(config: KafkaConfig) -> dict[str, Any]:
    """Keyword arguments for :class:`aiokafka.AIOKafkaProducer`."""
    return {
        "bootstrap_servers": config.bootstrap_servers,
        "client_id": config.client_id,
        "enable_idempotence": True,
        "acks": "all",
        "retry_backoff_ms": config.retry_backoff_ms,
        "request_timeout_ms": config.request_timeout_ms,
        "linger_ms": 0,
    }


def is_fatal(exc: BaseException) -> bool:
    """Broker errors that retrying cannot fix (authorization, bad config...)."""
    return isinstance(exc, KafkaError) and not getattr(exc, "retriable", False)


class EventPublisher(Generic[PayloadT]):
    """Publishes enveloped events of one kind to one topic.

    Attributes:
        profile: Event type, version, payload transform and key derivation.
        config: Broker addresses, topic, client id and flush timeout.
    """

    def __init__(
        self,
        profile: PublishProfile,
        config: KafkaConfig,
        producer: Producer | None = None,
        metrics: CourierMetrics | None = None,
    ):
        """Initialize the publisher.

        Args:
            profile: Publish profile for the event kind.
            config: Kafka configuration.
            producer: Pre-built producer (not yet started). When omitted an
                ``AIOKafkaProducer`` is created on :meth:`start`.
            metrics: Optional metrics collector.
        """
        self.profile = profile
        self.config = config
        self._producer = producer
        self._owns_producer = producer is None
        self._metrics = metrics
        self._started = False
        self._start_lock = asyncio.Lock()

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Connect the producer. Safe to call more than once."""
        async with self._start_lock:
            if self._started:
                return
            if self._producer is None:
                self._producer = AIOKafkaProducer(**producer_options(self.config))
            try:
                await self._producer.start()
            except BaseException:
                self._release_producer()
                raise
            self._started = True
            logger.info(
                "%s publisher started. Topic: %s, BootstrapServers: %s",
                self.profile.event_type,
                self.config.topic,
                self.config.bootstrap_servers,
            )

    async def stop(self) -> None:
        """Flush pending sends and release the producer.

        Flush and producer shutdown share one ``flush_timeout`` budget, with
        at least ``MIN_STOP_TIMEOUT`` left for the shutdown. When that runs
        out the producer is abandoned; unacknowledged sends may be lost.
        """
        if not self._started or self._producer is None:
            return
        producer = self._producer
        self._started = False
        self._release_producer()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.flush_timeout
        try:
            await asyncio.wait_for(producer.flush(), timeout=self.config.flush_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Flush of %s publisher did not finish within %ss; unacknowledged sends may be lost",
                self.profile.event_type,
                self.config.flush_timeout,
            )
        try:
            remaining = max(deadline - loop.time(), MIN_STOP_TIMEOUT)
            await asyncio.wait_for(producer.stop(), timeout=remaining)
        except asyncio.TimeoutError:
            logger.warning(
                "%s producer did not stop in time, abandoning it", self.profile.event_type
            )
            return
        logger.info("%s publisher stopped", self.profile.event_type)

    def _release_producer(self) -> None:
        # A stopped or failed aiokafka producer cannot be started again.
        if self._owns_producer:
            self._producer = None

    async def __aenter__(self) -> EventPublisher[PayloadT]:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def build_envelope(
        self,
        payload: PayloadT,
        tenant_id: str | None = None,
        message_id: str | None = None,
    ) -> EventEnvelope[PayloadT]:
        """Wrap an already transformed payload in a fresh envelope."""
        return EventEnvelope(
            message_id=message_id or str(uuid.uuid4()),
            event_type=self.profile.event_type,
            event_version=self.profile.event_version,
            source=self.config.client_id,
            tenant_id=tenant_id,
            payload=payload,
        )

    async def publish(
        self,
        payload: PayloadT,
        tenant_id: str | None = None,
        key: str | None = None,
        message_id: str | None = None,
    ) -> bool:
        """Publish one event.

        Args:
            payload: Caller payload, normalized by the profile first.
            tenant_id: Optional tenant recorded in the envelope.
            key: Explicit partition key; overrides the profile's key.
            message_id: Logical message id. Pass the same value on retries
                of one logical send; a fresh UUID is used when omitted.

        Returns:
            True once the broker acknowledged the record, False otherwise.
        """
        event_type = self.profile.event_type
        try:
            transformed = self.profile.transform(payload)
            envelope = self.build_envelope(transformed, tenant_id, message_id)
            routing_key = key if key is not None else self.profile.key_for(transformed)
            value = dumps_compact(envelope.to_record())

            if not self._started:
                await self.start()
            metadata = await self._producer.send_and_wait(
                self.config.topic,
                value=value,
                key=routing_key.encode("utf-8") if routing_key is not None else None,
                headers=[(EVENT_TYPE_HEADER, event_type.encode("utf-8"))],
            )
        except KafkaError as exc:
            logger.error(
                "Failed to publish %s. Error: %s, IsFatal: %s",
                event_type,
                exc,
                is_fatal(exc),
            )
            self._count(event_type, "fatal" if is_fatal(exc) else "error")
            return False
        except Exception:
            logger.exception("Unexpected error publishing %s", event_type)
            self._count(event_type, "error")
            return False

        logger.info(
            "Message published. Topic: %s, Partition: %s, Offset: %s, MessageId: %s",
            getattr(metadata, "topic", self.config.topic),
            getattr(metadata, "partition", None),
            getattr(metadata, "offset", None),
            envelope.message_id,
        )
        self._count(event_type, "ok")
        return True

    def _count(self, event_type: str, outcome: str) -> None:
        if self._metrics:
            self._metrics.inc_publish(event_type, outcome)

    def __repr__(self) -> str:
        return f"<EventPublisher {self.profile.event_type} -> {self.config.topic}>"
