"""
Rate Limiter - fixed-window attempt counting per identifier and action.
Checked before any scoring so denied submissions cost nothing downstream.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from submission_moderation.lib.metrics import metrics
from submission_moderation.lib.stores import RateLimitStore, InMemoryRateLimitStore
from submission_moderation.models.rate_limit import RateLimitResult, RateLimitRule

logger = logging.getLogger(__name__)

# Remaining count reported for actions without a configured rule
UNLIMITED_REMAINING = 999


class RateLimiter:
    """
    Counts attempts per (identifier, action) bucket.
    A bucket resets when more than its window has passed since the first
    attempt; within the window the (max+1)-th attempt is denied.
    """

    def __init__(
        self,
        rules: Dict[str, RateLimitRule],
        store: Optional[RateLimitStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.rules = dict(rules)
        self.store = store or InMemoryRateLimitStore()
        self.clock = clock

    def check_and_consume(self, identifier: str, action: str) -> RateLimitResult:
        """Record an attempt and report whether it is allowed."""
        action = getattr(action, 'value', action)
        rule = self.rules.get(action)
        if rule is None:
            logger.debug(f"No rate limit configured for action {action}")
            return RateLimitResult(allowed=True, remaining=UNLIMITED_REMAINING)

        now = self.clock()
        entry = self.store.hit(identifier, action, now, rule.window_seconds)
        window_end = entry.window_start + rule.window_seconds
        reset_at = datetime.fromtimestamp(window_end, tz=timezone.utc).replace(tzinfo=None)

        if entry.count <= rule.max_attempts:
            return RateLimitResult(
                allowed=True,
                remaining=rule.max_attempts - entry.count,
                reset_at=reset_at,
            )

        logger.warning(f"Rate limit exceeded for {identifier} on {action} ({entry.count}/{rule.max_attempts})")
        metrics.record_rate_limit_denial(action)
        return RateLimitResult(
            allowed=False,
            remaining=0,
            reset_at=reset_at,
            reason=f"Too many {action} attempts; try again after {reset_at.isoformat()}",
        )

    def cleanup(self) -> int:
        """Evict expired buckets."""
        windows = {action: rule.window_seconds for action, rule in self.rules.items()}
        return self.store.cleanup(self.clock(), windows)
