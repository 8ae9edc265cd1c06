"""
Rate limiting data models.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class RateLimitRule(BaseModel):
    """Maximum attempts allowed per window for one action kind."""
    max_attempts: int = Field(ge=1)
    window_seconds: float = Field(gt=0)

    @classmethod
    def per_minutes(cls, max_attempts: int, minutes: float) -> "RateLimitRule":
        return cls(max_attempts=max_attempts, window_seconds=minutes * 60)


class RateLimitEntry(BaseModel):
    """Attempt counter for one (identifier, action) bucket."""
    identifier: str
    action: str
    count: int = 0
    window_start: float  # epoch seconds


class RateLimitResult(BaseModel):
    """Outcome of a check-and-consume call."""
    allowed: bool
    remaining: int
    reset_at: Optional[datetime] = None
    reason: Optional[str] = None
