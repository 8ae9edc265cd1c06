"""
Tests for DecisionEngine priority and human-review rules.
"""

import pytest

from submission_moderation.config import DecisionThresholds
from submission_moderation.models.enums import ReviewPriority
from submission_moderation.models.submission import AIAssessment, SpamAssessment
from submission_moderation.services.decision_engine import DecisionEngine


def spam(score=0.0, indicators=None, honeypots=None) -> SpamAssessment:
    return SpamAssessment(
        score=score,
        indicators=indicators or [],
        is_spam=score > 0.5,
        honeypot_fields=honeypots or [],
    )


def ai(confidence=0.95, flags=None, approved=True, review=False) -> AIAssessment:
    return AIAssessment(approved=approved, confidence=confidence, flags=flags or [], requires_human_review=review)


@pytest.fixture
def engine():
    return DecisionEngine()


class TestPriority:

    def test_high_spam_score_is_urgent(self, engine):
        assert engine.determine_priority(spam(0.85), ai()) is ReviewPriority.URGENT

    def test_honeypot_is_urgent_even_with_zero_score(self, engine):
        assert engine.determine_priority(spam(0.0, honeypots=["website_url"]), ai()) is ReviewPriority.URGENT

    def test_score_at_urgent_threshold_is_not_urgent(self, engine):
        assert engine.determine_priority(spam(0.8), ai()) is not ReviewPriority.URGENT

    def test_many_ai_flags_is_high(self, engine):
        assert engine.determine_priority(spam(), ai(flags=["a", "b", "c"])) is ReviewPriority.HIGH

    def test_many_spam_indicators_is_high(self, engine):
        indicators = ["a", "b", "c", "d"]
        assert engine.determine_priority(spam(0.2, indicators), ai()) is ReviewPriority.HIGH

    def test_two_flags_is_medium(self, engine):
        assert engine.determine_priority(spam(), ai(flags=["a", "b"])) is ReviewPriority.MEDIUM

    def test_moderate_score_is_medium(self, engine):
        assert engine.determine_priority(spam(0.31), ai()) is ReviewPriority.MEDIUM

    def test_clean_submission_is_low(self, engine):
        assert engine.determine_priority(spam(0.3), ai()) is ReviewPriority.LOW

    def test_first_matching_rule_wins(self, engine):
        result = engine.determine_priority(spam(0.9, ["a", "b", "c", "d"]), ai(flags=["x", "y", "z"]))
        assert result is ReviewPriority.URGENT


class TestHumanReview:

    def test_spam_score_above_threshold(self, engine):
        assert engine.requires_human_review(spam(0.51), ai()) is True

    def test_spam_score_at_threshold(self, engine):
        assert engine.requires_human_review(spam(0.5), ai()) is False

    def test_honeypot_requires_review(self, engine):
        assert engine.requires_human_review(spam(honeypots=["company_name"]), ai()) is True

    def test_low_confidence_with_flags(self, engine):
        assert engine.requires_human_review(spam(), ai(confidence=0.7, flags=["pii-email"])) is True

    def test_low_confidence_without_flags(self, engine):
        assert engine.requires_human_review(spam(), ai(confidence=0.3)) is False

    def test_confident_flags_skip_review(self, engine):
        assert engine.requires_human_review(spam(), ai(confidence=0.85, flags=["pii-email"])) is False

    def test_classifier_review_flag_alone(self, engine):
        assert engine.requires_human_review(spam(), ai(review=True)) is True

    def test_decide_combines_both(self, engine):
        decision = engine.decide(spam(0.9), ai())
        assert decision.priority is ReviewPriority.URGENT
        assert decision.requires_human_review is True


class TestHardFloor:

    def test_above_floor(self, engine):
        assert engine.exceeds_hard_floor(spam(0.81)) is True

    def test_at_floor(self, engine):
        assert engine.exceeds_hard_floor(spam(0.8)) is False

    def test_custom_thresholds(self):
        engine = DecisionEngine(DecisionThresholds(hard_floor_spam_score=0.5, urgent_spam_score=0.5))
        assert engine.exceeds_hard_floor(spam(0.6)) is True
        assert engine.determine_priority(spam(0.6), ai()) is ReviewPriority.URGENT
