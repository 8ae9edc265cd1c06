"""
Moderation queue data models.
One ModerationItem per submission that went through a decision.
"""

from datetime import datetime
from typing import Optional, List, Dict, Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_serializer, field_validator

from submission_moderation.models.enums import (
    ContentType, QueueStatus, ReviewPriority, ModerationDecision
)
from submission_moderation.models.submission import SpamAssessment, AIAssessment


def new_id() -> str:
    return str(uuid4())


class ModerationItem(BaseModel):
    """
    Queue record for a submission.
    Priority and assessments are fixed at creation; only a moderator
    decision on a PENDING item changes it afterwards.
    """
    id: str = Field(default_factory=new_id)
    content_type: ContentType
    content_id: str
    status: QueueStatus = QueueStatus.PENDING
    priority: ReviewPriority = ReviewPriority.MEDIUM

    # Assessments captured at creation
    spam_assessment: SpamAssessment = Field(default_factory=SpamAssessment)
    ai_assessment: Optional[AIAssessment] = None

    # Point-in-time copy of the content for reviewer context
    content_snapshot: Dict[str, Any] = Field(default_factory=dict)

    # Moderation decision
    moderator_id: Optional[str] = None
    moderation_decision: Optional[ModerationDecision] = None
    moderation_notes: Optional[str] = None
    moderation_date: Optional[datetime] = None

    # Escalation info
    escalated_to: Optional[str] = None
    escalation_reason: Optional[str] = None
    escalation_date: Optional[datetime] = None

    # Submitter context
    submitter_id: Optional[str] = None
    submitter_ip: Optional[str] = None
    submitter_user_agent: Optional[str] = None
    submission_timestamp: Optional[datetime] = None
    rate_limit_triggered: bool = False

    created_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator('priority', mode='before')
    @classmethod
    def _parse_priority(cls, value):
        return ReviewPriority.parse(value)

    @field_serializer('priority')
    def _serialize_priority(self, priority: ReviewPriority) -> str:
        return priority.name

    @property
    def honeypot_triggered(self) -> bool:
        return self.spam_assessment.honeypot_triggered

    @property
    def ai_flags(self) -> List[str]:
        return self.ai_assessment.flags if self.ai_assessment else []

    @property
    def ai_confidence(self) -> Optional[float]:
        return self.ai_assessment.confidence if self.ai_assessment else None


class DecisionRequest(BaseModel):
    """A moderator decision for a single item."""
    decision: ModerationDecision
    moderator_id: str = "unknown"
    notes: Optional[str] = None
    escalated_to: Optional[str] = None
    escalation_reason: Optional[str] = None


class DecisionResult(BaseModel):
    """Per-item outcome of a decision."""
    item_id: str
    success: bool
    item: Optional[ModerationItem] = None
    error: Optional[str] = None
    error_code: Optional[str] = None  # conflict, not_found, error


class QueueStats(BaseModel):
    """Queue counts for dashboards and the queue depth gauge."""
    by_status: Dict[str, int] = Field(default_factory=dict)
    pending_by_priority: Dict[str, int] = Field(default_factory=dict)
    total: int = 0


class BulkDecisionRequest(BaseModel):
    """One decision and note applied to a set of items."""
    item_ids: List[str] = Field(min_length=1)
    decision: ModerationDecision
    moderator_id: str = "unknown"
    notes: Optional[str] = None


class BulkDecisionResult(BaseModel):
    """Per-item results of a bulk decision, in request order."""
    results: List[DecisionResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded
