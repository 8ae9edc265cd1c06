"""
Tests for the stream worker and the Kafka client wrappers, with the broker
and producer replaced by in-process fakes.
"""

import pytest

from submission_moderation.config import Settings
from submission_moderation.lib import kafka_client
from submission_moderation.lib.kafka_client import (
    ALERT_TOPIC, DLQ_TOPIC, SUBMISSION_TOPIC, KafkaAlertNotifier, MessageBroker
)
from submission_moderation.models.enums import ContentType, ReviewPriority
from submission_moderation.models.queue import ModerationItem
from submission_moderation.models.submission import SpamAssessment
from submission_moderation.run_pipeline import Pipeline
from tests.helpers import BENIGN_CONTEXT, make_submission


class RecordingBroker:
    def __init__(self):
        self.dlq = []

    def publish_dlq(self, message, error):
        self.dlq.append((message, error))
        return True


class FakeMetadata:
    partition = 0
    offset = 42


class FakeFuture:
    def get(self, timeout=None):
        return FakeMetadata()


class FakeProducer:
    def __init__(self):
        self.sent = []
        self.closed = False
        self.flushed = False

    def send(self, topic, value=None, key=None):
        self.sent.append((topic, value, key))
        return FakeFuture()

    def flush(self):
        self.flushed = True

    def close(self):
        self.closed = True


@pytest.fixture
def pipeline(services):
    worker = Pipeline(services=services, settings=Settings(store_backend="memory"))
    worker.broker = RecordingBroker()
    return worker


class TestPipelineWorker:

    def test_valid_message_is_processed(self, pipeline, services, listing):
        pipeline.handle_submission(make_submission(listing["id"], BENIGN_CONTEXT))

        assert pipeline.broker.dlq == []
        assert services.listing_service.get_listing(listing["id"])["status"] == "PUBLISHED"

    def test_malformed_message_goes_to_dlq(self, pipeline, services):
        message = {"content_type": "LISTING"}

        pipeline.handle_submission(message)

        assert len(pipeline.broker.dlq) == 1
        original, error = pipeline.broker.dlq[0]
        assert original == message
        assert "content_id" in error
        assert services.queue.stats().total == 0

    def test_unexpected_error_goes_to_dlq(self, pipeline, services, listing):
        def explode(*args, **kwargs):
            raise RuntimeError("store offline")

        services.moderation_service.rate_limiter.check_and_consume = explode

        pipeline.handle_submission(make_submission(listing["id"], BENIGN_CONTEXT))

        assert pipeline.broker.dlq[0][1] == "store offline"


class TestMessageBroker:

    def test_publish_routes_by_topic_and_key(self):
        broker = MessageBroker("kafka:9092")
        broker.producer = FakeProducer()

        assert broker.publish_submission({"content_id": "c-1"}) is True
        assert broker.publish_dlq({"content_id": "c-2"}, "bad message") is True

        (topic, value, key), (dlq_topic, dlq_value, dlq_key) = broker.producer.sent
        assert (topic, key) == (SUBMISSION_TOPIC, "c-1")
        assert dlq_topic == DLQ_TOPIC
        assert dlq_value["original_message"] == {"content_id": "c-2"}
        assert dlq_value["error"] == "bad message"
        assert dlq_key is None

    def test_close(self):
        broker = MessageBroker("kafka:9092")
        producer = broker.producer = FakeProducer()
        broker.close()
        assert producer.flushed is True
        assert producer.closed is True


class TestAlertNotifier:

    def test_alert_payload(self):
        broker = MessageBroker("kafka:9092")
        broker.producer = FakeProducer()
        item = ModerationItem(
            content_type=ContentType.REVIEW,
            content_id="r-1",
            priority=ReviewPriority.URGENT,
            spam_assessment=SpamAssessment(score=0.9, indicators=["honeypot-company_name"], is_spam=True,
                                           honeypot_fields=["company_name"]),
        )

        assert KafkaAlertNotifier(broker).notify(item) is True

        topic, alert, key = broker.producer.sent[0]
        assert topic == ALERT_TOPIC
        assert key == item.id
        assert alert["priority"] == "URGENT"
        assert alert["content_type"] == "REVIEW"
        assert alert["indicators"] == ["honeypot-company_name"]
        assert alert["ai_flags"] == []


class FakeMessage:
    def __init__(self, value, offset):
        self.value = value
        self.offset = offset


class FakeConsumer:
    def __init__(self, messages):
        self.messages = messages
        self.commits = 0

    def __iter__(self):
        return iter(self.messages)

    def commit(self):
        self.commits += 1

    def close(self):
        pass


class TestConsumerLoop:

    def test_commits_each_message_and_routes_failures(self, monkeypatch):
        raw = [b'{"content_id": "c-1"}', b'not json', b'{"content_id": "last"}']
        consumer = FakeConsumer([FakeMessage(kafka_client._decode(r), i) for i, r in enumerate(raw)])
        monkeypatch.setattr(kafka_client, "KafkaConsumer", lambda *args, **kwargs: consumer)
        broker = MessageBroker("kafka:9092")
        broker.producer = FakeProducer()
        handled = []

        def handler(value):
            handled.append(value["content_id"])
            if value["content_id"] == "last":
                broker.stop()

        broker.consume_submission_stream(handler)

        assert handled == ["c-1", "last"]
        assert consumer.commits == 3
        dlq = [value for topic, value, key in broker.producer.sent if topic == DLQ_TOPIC]
        assert dlq[0]["original_message"] == {"undecodable": "not json"}
