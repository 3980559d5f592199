import asyncio
import json

import pytest
from aiokafka.errors import KafkaConnectionError, TopicAuthorizationFailedError

from mail_courier.config_loader import KafkaConfig
from mail_courier.events import (
    EVENT_TYPE_HEADER,
    EmailEventProfile,
    EventPublisher,
    PassthroughProfile,
    StorageDeleteEventProfile,
    StorageUploadEventProfile,
    producer_options,
)
from mail_courier.events.publisher import is_fatal
from mail_courier.metrics import CourierMetrics
from mail_courier.models import EmailPayload, FileDeletePayload, FileUploadPayload


class RecordMetadata:
    def __init__(self, topic, partition, offset):
        self.topic = topic
        self.partition = partition
        self.offset = offset


class DummyProducer:
    """In-memory broker that drops records whose messageId it already holds."""

    def __init__(self, fail_with=None, flush_delay=0.0):
        self.fail_with = fail_with
        self.flush_delay = flush_delay
        self.started = 0
        self.stopped = 0
        self.flushed = 0
        self.sent = []
        self.log = {}

    async def start(self):
        self.started += 1

    async def stop(self):
        self.stopped += 1

    async def flush(self):
        await asyncio.sleep(self.flush_delay)
        self.flushed += 1

    async def send_and_wait(self, topic, value=None, key=None, headers=None):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append({"topic": topic, "value": value, "key": key, "headers": headers})
        record = json.loads(value)
        self.log.setdefault(record["messageId"], record)
        return RecordMetadata(topic, 0, len(self.log) - 1)


def make_publisher(profile=None, producer=None, **config):
    return EventPublisher(
        profile or EmailEventProfile(),
        KafkaConfig(client_id="billing", topic="email.events", **config),
        producer=producer or DummyProducer(),
    )


@pytest.mark.asyncio
async def test_publish_wraps_payload_in_envelope():
    producer = DummyProducer()
    publisher = make_publisher(producer=producer)

    ok = await publisher.publish(EmailPayload(to="User@Example.COM", subject="Hi"), tenant_id="acme")

    assert ok is True
    sent = producer.sent[0]
    assert sent["topic"] == "email.events"
    assert sent["key"] == b"user@example.com"
    assert sent["headers"] == [(EVENT_TYPE_HEADER, b"evt.email.message.send.v1")]
    record = json.loads(sent["value"])
    assert record["eventType"] == "evt.email.message.send.v1"
    assert record["eventVersion"] == 1
    assert record["source"] == "billing"
    assert record["tenantId"] == "acme"
    assert record["timestamp"].endswith("Z")
    assert record["payload"]["to"] == "user@example.com"
    assert record["payload"]["subject"] == "Hi"


@pytest.mark.asyncio
async def test_envelope_always_has_tenant_field():
    producer = DummyProducer()
    await make_publisher(producer=producer).publish(EmailPayload(to="a@example.com"))
    assert json.loads(producer.sent[0]["value"])["tenantId"] is None


@pytest.mark.asyncio
async def test_multiple_recipients_have_no_key():
    producer = DummyProducer()
    await make_publisher(producer=producer).publish(
        EmailPayload(to=["A@example.com", "b@example.com"])
    )
    sent = producer.sent[0]
    assert sent["key"] is None
    assert json.loads(sent["value"])["payload"]["to"] == ["a@example.com", "b@example.com"]


@pytest.mark.asyncio
async def test_explicit_key_overrides_profile():
    producer = DummyProducer()
    await make_publisher(producer=producer).publish(EmailPayload(to="a@example.com"), key="order-7")
    assert producer.sent[0]["key"] == b"order-7"


@pytest.mark.asyncio
async def test_storage_profiles_key_by_file():
    producer = DummyProducer()
    upload = make_publisher(StorageUploadEventProfile(), producer)
    delete = make_publisher(StorageDeleteEventProfile(), producer)

    await upload.publish(FileUploadPayload(file_name="report.pdf", file_content="aGk="))
    await delete.publish(FileDeletePayload(file_id="f-1", permanent=True))

    assert producer.sent[0]["key"] == b"report.pdf"
    assert producer.sent[0]["headers"][0][1] == b"evt.storage.file.upload.v1"
    assert producer.sent[1]["key"] == b"f-1"
    assert json.loads(producer.sent[1]["value"])["payload"] == {"fileId": "f-1", "permanent": True}


@pytest.mark.asyncio
async def test_passthrough_profile_publishes_plain_dicts():
    producer = DummyProducer()
    publisher = make_publisher(PassthroughProfile("evt.audit.v2", event_version=2), producer)
    await publisher.publish({"action": "login"})
    record = json.loads(producer.sent[0]["value"])
    assert record["eventVersion"] == 2
    assert record["payload"] == {"action": "login"}
    assert producer.sent[0]["key"] is None


@pytest.mark.asyncio
async def test_reused_message_id_is_deduplicated_by_broker():
    producer = DummyProducer()
    publisher = make_publisher(producer=producer)
    payload = EmailPayload(to="a@example.com")

    assert await publisher.publish(payload, message_id="m-1")
    assert await publisher.publish(payload, message_id="m-1")
    assert await publisher.publish(payload)

    assert len(producer.sent) == 3
    assert len(producer.log) == 2
    assert "m-1" in producer.log


def test_producer_options_enable_idempotence():
    options = producer_options(KafkaConfig(bootstrap_servers="k1:9092,k2:9092", client_id="app"))
    assert options["enable_idempotence"] is True
    assert options["acks"] == "all"
    assert options["bootstrap_servers"] == "k1:9092,k2:9092"
    assert options["client_id"] == "app"


@pytest.mark.asyncio
async def test_publish_starts_producer_once():
    producer = DummyProducer()
    publisher = make_publisher(producer=producer)
    await asyncio.gather(*(publisher.publish(EmailPayload(to="a@example.com")) for _ in range(3)))
    assert producer.started == 1
    assert publisher.started


@pytest.mark.asyncio
async def test_publish_returns_false_on_kafka_error():
    metrics = CourierMetrics()
    publisher = EventPublisher(
        EmailEventProfile(),
        KafkaConfig(),
        producer=DummyProducer(fail_with=KafkaConnectionError()),
        metrics=metrics,
    )
    assert await publisher.publish(EmailPayload(to="a@example.com")) is False
    output = metrics.generate_latest()
    assert b'outcome="error"' in output


@pytest.mark.asyncio
async def test_publish_returns_false_on_unexpected_error():
    publisher = make_publisher(producer=DummyProducer(fail_with=RuntimeError("boom")))
    assert await publisher.publish(EmailPayload(to="a@example.com")) is False


def test_is_fatal_uses_retriable_flag():
    assert is_fatal(TopicAuthorizationFailedError()) is True
    assert is_fatal(KafkaConnectionError()) is False
    assert is_fatal(RuntimeError()) is False


@pytest.mark.asyncio
async def test_context_manager_flushes_and_stops():
    producer = DummyProducer()
    async with make_publisher(producer=producer) as publisher:
        await publisher.publish(EmailPayload(to="a@example.com"))
    assert producer.flushed == 1
    assert producer.stopped == 1
    assert not publisher.started


@pytest.mark.asyncio
async def test_stop_gives_up_on_slow_flush():
    producer = DummyProducer(flush_delay=1.0)
    publisher = make_publisher(producer=producer, flush_timeout=0.05)
    await publisher.start()
    await publisher.stop()
    assert producer.flushed == 0
    assert producer.stopped == 1


@pytest.mark.asyncio
async def test_stop_without_start_is_noop():
    producer = DummyProducer()
    await make_publisher(producer=producer).stop()
    assert producer.stopped == 0


class HangingStopProducer(DummyProducer):
    async def stop(self):
        await asyncio.sleep(30)
        self.stopped += 1


@pytest.mark.asyncio
async def test_stop_abandons_producer_whose_shutdown_hangs():
    producer = HangingStopProducer(flush_delay=30)
    publisher = make_publisher(producer=producer, flush_timeout=0.05)
    await publisher.start()

    await asyncio.wait_for(publisher.stop(), timeout=5)

    assert producer.stopped == 0
    assert not publisher.started


@pytest.fixture
def created_producers(monkeypatch):
    created = []

    def factory(**options):
        producer = DummyProducer()
        producer.options = options
        created.append(producer)
        return producer

    monkeypatch.setattr("mail_courier.events.publisher.AIOKafkaProducer", factory)
    return created


@pytest.mark.asyncio
async def test_publish_after_stop_uses_a_fresh_producer(created_producers):
    publisher = EventPublisher(EmailEventProfile(), KafkaConfig())

    async with publisher:
        assert await publisher.publish(EmailPayload(to="a@example.com"))
    assert await publisher.publish(EmailPayload(to="b@example.com"))

    assert len(created_producers) == 2
    first, second = created_producers
    assert first.stopped == 1
    assert len(first.sent) == 1
    assert second.started == 1
    assert len(second.sent) == 1
    assert second.options["enable_idempotence"] is True


class RefusingProducer(DummyProducer):
    async def start(self):
        raise KafkaConnectionError()


@pytest.mark.asyncio
async def test_failed_start_is_retried_with_a_fresh_producer(monkeypatch):
    created = []

    def factory(**options):
        producer = RefusingProducer() if not created else DummyProducer()
        created.append(producer)
        return producer

    monkeypatch.setattr("mail_courier.events.publisher.AIOKafkaProducer", factory)
    publisher = EventPublisher(EmailEventProfile(), KafkaConfig())

    assert await publisher.publish(EmailPayload(to="a@example.com")) is False
    assert await publisher.publish(EmailPayload(to="a@example.com")) is True
    assert len(created) == 2
    assert len(created[1].sent) == 1
