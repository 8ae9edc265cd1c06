"""
Decision Engine - fuses spam signals and the AI assessment.
Assigns a review priority and decides whether a human must look at the content.
"""

from dataclasses import dataclass
from typing import Optional

from submission_moderation.config import DecisionThresholds
from submission_moderation.models.enums import ReviewPriority
from submission_moderation.models.submission import SpamAssessment, AIAssessment


@dataclass(frozen=True)
class Decision:
    """Result of the decision engine for one submission."""
    priority: ReviewPriority
    requires_human_review: bool


class DecisionEngine:
    """
    Rule-based priority and review routing.
    Priority rules are evaluated in order and the first match wins.
    """

    def __init__(self, thresholds: Optional[DecisionThresholds] = None):
        self.thresholds = thresholds or DecisionThresholds()

    def decide(self, spam: SpamAssessment, ai: AIAssessment) -> Decision:
        return Decision(
            priority=self.determine_priority(spam, ai),
            requires_human_review=self.requires_human_review(spam, ai),
        )

    def determine_priority(self, spam: SpamAssessment, ai: AIAssessment) -> ReviewPriority:
        t = self.thresholds

        # Bot traffic or a very high spam score
        if spam.score > t.urgent_spam_score or spam.honeypot_triggered:
            return ReviewPriority.URGENT

        # Many AI flags or many spam indicators
        if len(ai.flags) > t.high_ai_flag_count or len(spam.indicators) > t.high_spam_indicator_count:
            return ReviewPriority.HIGH

        # Some flags or a moderate spam score
        if len(ai.flags) > 0 or spam.score > t.medium_spam_score:
            return ReviewPriority.MEDIUM

        return ReviewPriority.LOW

    def requires_human_review(self, spam: SpamAssessment, ai: AIAssessment) -> bool:
        t = self.thresholds

        if spam.score > t.review_spam_score or spam.honeypot_triggered:
            return True

        if ai.confidence < t.review_ai_confidence and len(ai.flags) > 0:
            return True

        return ai.requires_human_review

    def exceeds_hard_floor(self, spam: SpamAssessment) -> bool:
        """Spam signal strong enough to skip the AI classifier entirely."""
        return spam.score > self.thresholds.hard_floor_spam_score
