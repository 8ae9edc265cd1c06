"""
Builds the service graph for a deployment from Settings.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from submission_moderation.config import ModerationConfig, Settings
from submission_moderation.lib.database import (
    DatabaseConnection, PostgresContentStore, PostgresModerationItemStore,
    PostgresRateLimitStore, PostgresVersionStore
)
from submission_moderation.lib.kafka_client import KafkaAlertNotifier, MessageBroker
from submission_moderation.lib.stores import (
    InMemoryContentStore, InMemoryModerationItemStore, InMemoryRateLimitStore, InMemoryVersionStore
)
from submission_moderation.services.ai_classifier import (
    ContentClassifier, HeuristicContentClassifier, RemoteContentClassifier
)
from submission_moderation.services.audit_trail import AuditTrail
from submission_moderation.services.listing_service import ListingService
from submission_moderation.services.moderation_service import ModerationService
from submission_moderation.services.queue_service import ModerationQueue
from submission_moderation.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


@dataclass
class ModerationServices:
    config: ModerationConfig
    queue: ModerationQueue
    audit_trail: AuditTrail
    rate_limiter: RateLimiter
    listing_service: ListingService
    moderation_service: ModerationService
    db: Optional[DatabaseConnection] = None
    broker: Optional[MessageBroker] = None

    def close(self):
        if self.db is not None:
            self.db.close()
        if self.broker is not None:
            self.broker.close()


def build_services(
    settings: Optional[Settings] = None,
    config: Optional[ModerationConfig] = None,
    classifier: Optional[ContentClassifier] = None,
) -> ModerationServices:
    settings = settings or Settings.from_env()
    config = config or settings.moderation_config()

    db = None
    if settings.store_backend == "postgres":
        db = DatabaseConnection(settings)
        db.create_schema()
        content_store = PostgresContentStore(db)
        item_store = PostgresModerationItemStore(db)
        version_store = PostgresVersionStore(db)
        rate_limit_store = PostgresRateLimitStore(db)
    elif settings.store_backend == "memory":
        content_store = InMemoryContentStore()
        item_store = InMemoryModerationItemStore()
        version_store = InMemoryVersionStore()
        rate_limit_store = InMemoryRateLimitStore()
    else:
        raise ValueError(f"Unknown store backend: {settings.store_backend}")

    if classifier is None:
        if settings.classifier_url:
            classifier = RemoteContentClassifier(settings.classifier_url, timeout=settings.classifier_timeout_seconds)
        else:
            classifier = HeuristicContentClassifier()

    broker = None
    notifier = None
    if settings.kafka_bootstrap_servers:
        broker = MessageBroker(settings.kafka_bootstrap_servers)
        notifier = KafkaAlertNotifier(broker)

    audit_trail = AuditTrail(version_store)
    queue = ModerationQueue(item_store, content_store, audit_trail)
    rate_limiter = RateLimiter(config.rate_limits, rate_limit_store)
    moderation_service = ModerationService(
        config=config,
        queue=queue,
        rate_limiter=rate_limiter,
        classifier=classifier,
        notifier=notifier,
    )

    logger.info(
        f"Moderation services built (store={settings.store_backend}, "
        f"classifier={type(classifier).__name__}, alerts={'on' if notifier else 'off'})"
    )
    return ModerationServices(
        config=config,
        queue=queue,
        audit_trail=audit_trail,
        rate_limiter=rate_limiter,
        listing_service=ListingService(content_store, audit_trail),
        moderation_service=moderation_service,
        db=db,
        broker=broker,
    )
