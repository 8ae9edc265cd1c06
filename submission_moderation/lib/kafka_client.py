"""
Kafka message broker client for the submission stream, admin alerts and
the dead letter topic.
"""
import os
import json
import logging
import time
from typing import Any, Callable, Dict, Optional

from kafka import KafkaConsumer, KafkaProducer
from kafka.errors import KafkaError

from submission_moderation.models.queue import ModerationItem

logger = logging.getLogger(__name__)

SUBMISSION_TOPIC = 'submission-stream'
ALERT_TOPIC = 'moderation-alerts'
DLQ_TOPIC = 'submission-dlq'

CONSUMER_GROUP = 'submission-moderation'
SEND_TIMEOUT_SECONDS = 10


def _decode(raw: bytes) -> Any:
    """Decode a message value; undecodable payloads are kept as text for the DLQ."""
    try:
        return json.loads(raw.decode('utf-8'))
    except (UnicodeDecodeError, ValueError):
        return {'undecodable': raw.decode('utf-8', errors='replace')}


class MessageBroker:
    """
    Kafka producer and consumer wrapper.
    The producer connects on first publish so that building a broker never
    touches the network.
    """

    def __init__(self, bootstrap_servers: Optional[str] = None):
        self.bootstrap_servers = bootstrap_servers or os.getenv('KAFKA_BOOTSTRAP_SERVERS', 'localhost:9092')
        self.producer = None
        self.consumers: Dict[str, KafkaConsumer] = {}
        self._running = False

    def _get_producer(self) -> KafkaProducer:
        if self.producer is None:
            try:
                self.producer = KafkaProducer(
                    bootstrap_servers=self.bootstrap_servers,
                    value_serializer=lambda v: json.dumps(v, default=str).encode('utf-8'),
                    key_serializer=lambda k: k.encode('utf-8') if k else None,
                    acks='all',
                    retries=3,
                    max_in_flight_requests_per_connection=1
                )
                logger.info(f"Kafka producer connected to {self.bootstrap_servers}")
            except KafkaError as e:
                logger.error(f"Failed to connect Kafka producer to {self.bootstrap_servers}: {e}")
                raise
        return self.producer

    def publish(self, topic: str, message: Dict[str, Any], key: Optional[str] = None) -> bool:
        """Send one message and wait for the broker ack. Returns False on send failure."""
        producer = self._get_producer()
        try:
            metadata = producer.send(topic, value=message, key=key).get(timeout=SEND_TIMEOUT_SECONDS)
        except KafkaError as e:
            logger.error(f"Failed to publish to {topic}: {e}")
            return False
        logger.debug(f"Published to {topic}[{metadata.partition}] @ {metadata.offset}")
        return True

    def publish_submission(self, submission: Dict[str, Any]) -> bool:
        """Keyed by content id so updates to one item stay ordered."""
        return self.publish(SUBMISSION_TOPIC, submission, key=submission.get('content_id'))

    def publish_alert(self, alert: Dict[str, Any]) -> bool:
        return self.publish(ALERT_TOPIC, alert, key=alert.get('item_id'))

    def publish_dlq(self, original_message: Any, error: str) -> bool:
        return self.publish(DLQ_TOPIC, {
            'original_message': original_message,
            'error': error,
            'failed_at': time.time(),
        })

    def consume(self, topic: str, handler: Callable[[Dict[str, Any]], None],
                group_id: str = CONSUMER_GROUP, auto_offset_reset: str = 'earliest'):
        """
        Run handler for every message on topic until stop() is called.
        Offsets are committed after the handler returns; a message whose
        handler raises is sent to the DLQ and then committed.
        """
        consumer = KafkaConsumer(
            topic,
            bootstrap_servers=self.bootstrap_servers,
            group_id=group_id,
            value_deserializer=_decode,
            auto_offset_reset=auto_offset_reset,
            enable_auto_commit=False,
            consumer_timeout_ms=1000,
        )
        self.consumers[f"{topic}:{group_id}"] = consumer
        self._running = True
        logger.info(f"Consuming {topic} as {group_id}")

        while self._running:
            for message in consumer:
                value = message.value
                try:
                    if 'undecodable' in value:
                        raise ValueError("message is not valid JSON")
                    handler(value)
                except Exception as e:
                    logger.error(f"Failed to handle {topic} offset {message.offset}: {e}")
                    self.publish_dlq(value, str(e))
                consumer.commit()
                if not self._running:
                    break

    def consume_submission_stream(self, handler: Callable[[Dict[str, Any]], None]):
        self.consume(SUBMISSION_TOPIC, handler)

    def stop(self):
        self._running = False

    def close(self):
        """Flush pending sends and close every connection."""
        self.stop()
        if self.producer is not None:
            self.producer.flush()
            self.producer.close()
        for consumer in self.consumers.values():
            consumer.close()
        logger.info("Kafka connections closed")


class KafkaAlertNotifier:
    """Sends high-priority queue items to the administrator alert topic."""

    def __init__(self, broker: MessageBroker):
        self.broker = broker

    def notify(self, item: ModerationItem) -> bool:
        alert = {
            'item_id': item.id,
            'content_type': item.content_type.value,
            'content_id': item.content_id,
            'priority': item.priority.name,
            'spam_score': item.spam_assessment.score,
            'indicators': item.spam_assessment.indicators,
            'ai_flags': item.ai_flags,
            'created_at': item.created_at.isoformat(),
        }
        sent = self.broker.publish_alert(alert)
        if sent:
            logger.info(f"Admin alert sent for {item.priority.name} item {item.id}")
        return sent
