"""
Main pipeline worker - consumes the submission stream and moderates each message
"""
import asyncio
import logging
import threading
import time
from typing import Any, Dict, Optional

from submission_moderation.bootstrap import ModerationServices, build_services
from submission_moderation.config import Settings
from submission_moderation.errors import SubmissionValidationError
from submission_moderation.lib.kafka_client import MessageBroker
from submission_moderation.lib.metrics import metrics

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Rate-limit buckets are swept this often
CLEANUP_INTERVAL_SECONDS = 300


class Pipeline:
    """End-to-end pipeline orchestrator"""

    def __init__(self, services: Optional[ModerationServices] = None, settings: Optional[Settings] = None):
        self.settings = settings or Settings.from_env()
        self.services = services or build_services(self.settings)
        self.broker = self.services.broker or MessageBroker(self.settings.kafka_bootstrap_servers)
        metrics.port = self.settings.metrics_port
        logger.info("Pipeline initialized")

    def handle_submission(self, submission_data: Dict[str, Any]):
        """
        1. Validate the message
        2. Run the moderation pipeline
        3. Send failures to the dead letter queue
        """
        try:
            result = asyncio.run(self.services.moderation_service.process(submission_data))
            logger.info(
                f"Submission {submission_data.get('content_id')} processed: "
                f"{result.outcome.value} via {' -> '.join(result.routing_path)}"
            )
        except SubmissionValidationError as e:
            logger.warning(f"Rejected malformed submission: {e}")
            self.broker.publish_dlq(submission_data, str(e))
        except Exception as e:
            logger.error(f"Error processing submission: {e}")
            self.broker.publish_dlq(submission_data, str(e))

    def _cleanup_loop(self):
        while True:
            time.sleep(CLEANUP_INTERVAL_SECONDS)
            try:
                removed = self.services.rate_limiter.cleanup()
                logger.debug(f"Removed {removed} expired rate-limit buckets")
            except Exception as e:
                logger.error(f"Rate-limit cleanup failed: {e}")

    def start(self):
        """Start consuming from Kafka"""
        metrics.start()
        logger.info("Starting pipeline consumers...")

        consumer_thread = threading.Thread(
            target=self.broker.consume_submission_stream,
            args=(self.handle_submission,),
            daemon=True
        )
        consumer_thread.start()

        threading.Thread(target=self._cleanup_loop, daemon=True).start()

        logger.info("Pipeline consumers started")

        # Keep main thread alive
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            logger.info("Shutting down pipeline...")
            if self.broker is not self.services.broker:
                self.broker.close()
            self.services.close()


if __name__ == '__main__':
    pipeline = Pipeline()
    pipeline.start()
