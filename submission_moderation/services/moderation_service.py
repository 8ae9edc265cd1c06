"""
Core Moderation Orchestration Service.
Routes each submission through rate limiting, signal extraction, the spam
floor, the AI classifier and the decision engine, then publishes it or
queues it for a moderator.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from submission_moderation.config import ModerationConfig
from submission_moderation.errors import ContentNotFoundError, SubmissionValidationError
from submission_moderation.lib.metrics import metrics
from submission_moderation.models.enums import (
    ModerationDecision, PipelineOutcome, QueueStatus, ReviewPriority
)
from submission_moderation.models.queue import ModerationItem
from submission_moderation.models.rate_limit import RateLimitResult
from submission_moderation.models.submission import AIAssessment, SpamAssessment, Submission
from submission_moderation.services.ai_classifier import (
    ContentClassifier, HeuristicContentClassifier, classify_with_fallback
)
from submission_moderation.services.decision_engine import Decision, DecisionEngine
from submission_moderation.services.queue_service import ModerationQueue
from submission_moderation.services.rate_limiter import RateLimiter
from submission_moderation.services.signal_extractor import SignalExtractor

logger = logging.getLogger(__name__)

SYSTEM_MODERATOR = "system"

# Priorities that page an administrator when queued
ALERT_PRIORITIES = (ReviewPriority.HIGH, ReviewPriority.URGENT)


@dataclass
class ModerationPipelineResult:
    """Complete result of the moderation pipeline for one submission."""
    outcome: PipelineOutcome
    routing_path: List[str]
    total_processing_time_ms: int
    item: Optional[ModerationItem] = None
    spam_assessment: Optional[SpamAssessment] = None
    ai_assessment: Optional[AIAssessment] = None
    decision: Optional[Decision] = None
    rate_limit: Optional[RateLimitResult] = None
    notified: bool = False
    reasons: List[str] = field(default_factory=list)


def parse_submission(data: Union[Submission, Dict[str, Any]]) -> Submission:
    """Build a Submission, reporting every malformed field at once."""
    if isinstance(data, Submission):
        return data
    try:
        return Submission.model_validate(data)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in err['loc']) or 'submission'}: {err['msg']}"
            for err in e.errors()
        ]
        raise SubmissionValidationError(errors) from e


def skipped_assessment(reason: str) -> AIAssessment:
    """Stand-in assessment for submissions that never reach the classifier."""
    return AIAssessment(
        approved=False,
        confidence=0.0,
        flags=[],
        requires_human_review=True,
        details={'skipped': reason},
    )


class ModerationService:
    """
    Central orchestration service for submission moderation.
    Each call to process() is an independent unit of work; the only shared
    state lives in the stores behind the rate limiter and the queue.
    """

    def __init__(
        self,
        config: Optional[ModerationConfig] = None,
        queue: Optional[ModerationQueue] = None,
        rate_limiter: Optional[RateLimiter] = None,
        classifier: Optional[ContentClassifier] = None,
        notifier=None,
    ):
        self.config = config or ModerationConfig()
        self.queue = queue or ModerationQueue()
        self.rate_limiter = rate_limiter or RateLimiter(self.config.rate_limits)
        self.classifier = classifier or HeuristicContentClassifier()
        self.signal_extractor = SignalExtractor(self.config)
        self.decision_engine = DecisionEngine(self.config.thresholds)
        self.notifier = notifier

    @metrics.track_processing("pipeline")
    async def process(self, data: Union[Submission, Dict[str, Any]]) -> ModerationPipelineResult:
        """
        Main entry point for submission moderation.
        Raises SubmissionValidationError for malformed input; every scoring
        failure degrades instead of raising.
        """
        start_time = datetime.utcnow()
        submission = parse_submission(data)
        context = submission.context
        routing_path: List[str] = []

        # Step 1: Rate limit before any scoring work
        action = submission.rate_limit_action()
        rate_limit = self.rate_limiter.check_and_consume(context.identifier, action)
        if not rate_limit.allowed:
            routing_path.append(f"rate_limited:{action.value}")
            return self._finish(
                submission, start_time, routing_path,
                outcome=PipelineOutcome.RATE_LIMITED,
                rate_limit=rate_limit,
                reasons=[rate_limit.reason] if rate_limit.reason else [],
            )
        routing_path.append("rate_limit:ok")

        # Step 2: Heuristic spam signals
        spam = self.signal_extractor.assess(context)
        for indicator in spam.indicators:
            metrics.record_spam_indicator(indicator)
        routing_path.append(f"signals:{spam.score}")

        # Step 3: Spam floor, never reaches the classifier
        if self.decision_engine.exceeds_hard_floor(spam):
            routing_path.append("spam_floor")
            ai = skipped_assessment("spam-floor")
            decision = self.decision_engine.decide(spam, ai)
            if self.config.auto_reject_spam:
                item = self._auto_reject(submission, spam, ai, decision, start_time, rate_limit)
                routing_path.append("auto_reject")
                return self._finish(
                    submission, start_time, routing_path,
                    outcome=PipelineOutcome.REJECTED,
                    item=item, spam=spam, ai=ai, decision=decision, rate_limit=rate_limit,
                )
            item = self._enqueue(submission, spam, ai, ReviewPriority.URGENT, start_time, rate_limit)
            routing_path.append("human_review:URGENT")
            return self._finish(
                submission, start_time, routing_path,
                outcome=PipelineOutcome.QUEUED,
                item=item, spam=spam, ai=ai, decision=decision, rate_limit=rate_limit,
                notified=self._notify(item),
            )

        # Step 4: AI classifier, bounded and degrading on failure
        routing_path.append("ai_classifier")
        ai = await classify_with_fallback(
            self.classifier,
            submission.classification_request(),
            timeout_seconds=self.config.classifier_timeout_seconds,
            fallback_confidence=self.config.classifier_fallback_confidence,
        )

        # Step 5: Priority and review routing
        decision = self.decision_engine.decide(spam, ai)

        if decision.requires_human_review:
            item = self._enqueue(submission, spam, ai, decision.priority, start_time, rate_limit)
            routing_path.append(f"human_review:{decision.priority.name}")
            return self._finish(
                submission, start_time, routing_path,
                outcome=PipelineOutcome.QUEUED,
                item=item, spam=spam, ai=ai, decision=decision, rate_limit=rate_limit,
                notified=self._notify(item),
            )

        # Step 6: Auto-approve
        item = self._auto_approve(submission, spam, ai, decision, start_time, rate_limit)
        routing_path.append("auto_approve")
        return self._finish(
            submission, start_time, routing_path,
            outcome=PipelineOutcome.AUTO_APPROVED,
            item=item, spam=spam, ai=ai, decision=decision, rate_limit=rate_limit,
        )

    def _build_item(
        self,
        submission: Submission,
        spam: SpamAssessment,
        ai: AIAssessment,
        priority: ReviewPriority,
        submitted_at: datetime,
        rate_limit: RateLimitResult,
        **resolution,
    ) -> ModerationItem:
        context = submission.context
        snapshot = self.queue.snapshot_content(submission.content_type, submission.content_id)
        if not snapshot:
            snapshot = context.model_dump(exclude={'honeypot_fields'})

        return ModerationItem(
            content_type=submission.content_type,
            content_id=submission.content_id,
            priority=priority,
            spam_assessment=spam,
            ai_assessment=ai,
            content_snapshot=snapshot,
            submitter_id=submission.submitter_id,
            submitter_ip=context.ip_address,
            submitter_user_agent=context.user_agent,
            submission_timestamp=submitted_at,
            rate_limit_triggered=rate_limit.remaining == 0,
            **resolution,
        )

    def _enqueue(self, submission, spam, ai, priority, submitted_at, rate_limit) -> ModerationItem:
        item = self._build_item(submission, spam, ai, priority, submitted_at, rate_limit)
        return self.queue.create_item(item)

    def _auto_approve(self, submission, spam, ai, decision, submitted_at, rate_limit) -> ModerationItem:
        item = self._build_item(
            submission, spam, ai, decision.priority, submitted_at, rate_limit,
            status=QueueStatus.APPROVED,
            moderator_id=SYSTEM_MODERATOR,
            moderation_decision=ModerationDecision.APPROVE,
            moderation_notes="Auto-approved: no review required",
            moderation_date=datetime.utcnow(),
        )
        self._apply_content_status(submission, submission.content_type.published_status)
        return self.queue.create_item(item)

    def _auto_reject(self, submission, spam, ai, decision, submitted_at, rate_limit) -> ModerationItem:
        item = self._build_item(
            submission, spam, ai, decision.priority, submitted_at, rate_limit,
            status=QueueStatus.REJECTED,
            moderator_id=SYSTEM_MODERATOR,
            moderation_decision=ModerationDecision.REJECT,
            moderation_notes=f"Auto-rejected: spam score {spam.score}",
            moderation_date=datetime.utcnow(),
        )
        self._apply_content_status(submission, submission.content_type.hidden_status)
        return self.queue.create_item(item)

    def _apply_content_status(self, submission: Submission, status: str) -> None:
        try:
            self.queue.set_content_status(
                submission.content_type, submission.content_id, status, SYSTEM_MODERATOR
            )
        except ContentNotFoundError:
            logger.warning(
                f"{submission.content_type.value} {submission.content_id} not in content store; "
                f"status {status} not applied"
            )

    def _notify(self, item: ModerationItem) -> bool:
        """Alert administrators about high-priority items. Never fatal."""
        if self.notifier is None or item.priority not in ALERT_PRIORITIES:
            return False
        try:
            return bool(self.notifier.notify(item))
        except Exception as e:
            logger.error(f"Failed to send admin notification for item {item.id}: {e}")
            return False

    def _finish(self, submission: Submission, start_time: datetime, routing_path: List[str],
                outcome: PipelineOutcome, item=None, spam=None, ai=None, decision=None,
                rate_limit=None, notified=False, reasons=None) -> ModerationPipelineResult:
        elapsed = self._calc_time_ms(start_time)
        metrics.record_submission(outcome.value, submission.content_type.value)
        logger.info(
            f"{submission.content_type.value} {submission.content_id}: {outcome.value}"
            f"{f' ({item.priority.name})' if item is not None else ''} in {elapsed}ms"
        )
        return ModerationPipelineResult(
            outcome=outcome,
            routing_path=routing_path,
            total_processing_time_ms=elapsed,
            item=item,
            spam_assessment=spam,
            ai_assessment=ai,
            decision=decision,
            rate_limit=rate_limit,
            notified=notified,
            reasons=reasons or [],
        )

    def _calc_time_ms(self, start: datetime) -> int:
        """Calculate processing time in milliseconds."""
        return int((datetime.utcnow() - start).total_seconds() * 1000)
