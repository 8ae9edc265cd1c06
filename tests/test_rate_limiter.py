"""
Tests for RateLimiter.

Tests:
- Fixed-window counting and denial
- Window expiry at the boundary
- Bucket isolation between identifiers and actions
- Concurrent check-and-consume
"""

import threading
from datetime import datetime

import pytest

from submission_moderation.config import DEFAULT_RATE_LIMITS
from submission_moderation.models.rate_limit import RateLimitRule
from submission_moderation.services.rate_limiter import RateLimiter, UNLIMITED_REMAINING
from tests.helpers import FakeClock

LISTING = "listing_submission"
REVIEW = "review_submission"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter(DEFAULT_RATE_LIMITS, clock=clock)


class TestCounting:

    def test_remaining_counts_down_then_denies(self, limiter):
        results = [limiter.check_and_consume("1.2.3.4", LISTING) for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        assert results[3].reason is not None

    def test_reset_at_is_window_end(self, limiter):
        result = limiter.check_and_consume("1.2.3.4", LISTING)
        # 1_700_000_000 is 2023-11-14 22:13:20 UTC
        assert result.reset_at == datetime(2023, 11, 14, 23, 13, 20)
        assert result.reset_at.tzinfo is None

    def test_denied_attempts_keep_counting(self, limiter, clock):
        for _ in range(5):
            limiter.check_and_consume("1.2.3.4", LISTING)
        clock.advance(1800)
        assert limiter.check_and_consume("1.2.3.4", LISTING).allowed is False

    def test_accepts_enum_action(self, limiter):
        from submission_moderation.models.enums import RateLimitAction

        result = limiter.check_and_consume("1.2.3.4", RateLimitAction.REVIEW_SUBMISSION)
        assert result.remaining == 9


class TestWindow:

    def test_still_denied_at_exact_window_end(self, limiter, clock):
        for _ in range(4):
            limiter.check_and_consume("1.2.3.4", LISTING)
        clock.advance(3600)
        assert limiter.check_and_consume("1.2.3.4", LISTING).allowed is False

    def test_allowed_after_window(self, limiter, clock):
        for _ in range(4):
            limiter.check_and_consume("1.2.3.4", LISTING)
        clock.advance(3600.001)

        result = limiter.check_and_consume("1.2.3.4", LISTING)
        assert result.allowed is True
        assert result.remaining == 2

    def test_cleanup_removes_expired_buckets(self, limiter, clock):
        limiter.check_and_consume("a", LISTING)
        limiter.check_and_consume("b", REVIEW)
        clock.advance(901)

        # Review window (15 min) has elapsed, listing window (60 min) has not
        assert limiter.cleanup() == 1
        assert limiter.check_and_consume("a", LISTING).remaining == 1


class TestIsolation:

    def test_identifiers_are_independent(self, limiter):
        for _ in range(3):
            limiter.check_and_consume("1.2.3.4", LISTING)
        assert limiter.check_and_consume("5.6.7.8", LISTING).allowed is True

    def test_actions_are_independent(self, limiter):
        for _ in range(4):
            limiter.check_and_consume("1.2.3.4", LISTING)
        assert limiter.check_and_consume("1.2.3.4", REVIEW).allowed is True

    def test_unknown_action_is_unlimited(self, limiter):
        results = [limiter.check_and_consume("1.2.3.4", "newsletter_signup") for _ in range(50)]
        assert all(r.allowed for r in results)
        assert results[-1].remaining == UNLIMITED_REMAINING


class TestConcurrency:

    def test_parallel_attempts_allow_exactly_max(self, clock):
        limiter = RateLimiter({LISTING: RateLimitRule(max_attempts=5, window_seconds=60)}, clock=clock)
        allowed = []
        lock = threading.Lock()

        def attempt():
            result = limiter.check_and_consume("1.2.3.4", LISTING)
            with lock:
                allowed.append(result.allowed)

        threads = [threading.Thread(target=attempt) for _ in range(40)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert allowed.count(True) == 5
        assert allowed.count(False) == 35
