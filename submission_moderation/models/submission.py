"""
Submission and assessment data models.
Pydantic models for type safety and validation.
"""

from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, Field

from submission_moderation.models.enums import ContentType, RateLimitAction


class SubmissionContext(BaseModel):
    """
    Everything known about one submission event.
    Created once per submission and never modified.
    """
    model_config = ConfigDict(frozen=True)

    identifier: str = Field(min_length=1)  # IP, user id or email
    text: str = ""

    # Contact fields
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None

    # Hidden trap fields, name -> submitted value
    honeypot_fields: Dict[str, Any] = Field(default_factory=dict)

    # Client metadata
    submission_time_ms: int = Field(ge=0)  # Time between form render and submit
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


class SpamAssessment(BaseModel):
    """Heuristic spam score and the indicators that produced it."""
    score: float = Field(ge=0.0, le=1.0, default=0.0)
    indicators: List[str] = Field(default_factory=list)
    is_spam: bool = False
    honeypot_fields: List[str] = Field(default_factory=list)

    @property
    def honeypot_triggered(self) -> bool:
        return len(self.honeypot_fields) > 0


class AIAssessment(BaseModel):
    """
    Assessment returned by the AI classifier.
    Only these fields are interpreted; details is opaque.
    """
    approved: bool
    confidence: float = Field(ge=0.0, le=1.0)
    flags: List[str] = Field(default_factory=list)
    requires_human_review: bool = False
    details: Optional[Dict[str, Any]] = None


class ClassificationRequest(BaseModel):
    """Input for the AI classifier. Either part may be absent."""
    text: Optional[str] = None
    images: List[str] = Field(default_factory=list)


class Submission(BaseModel):
    """
    A piece of content entering the moderation pipeline.
    Maps to the submission-stream message payload.
    """
    content_type: ContentType
    content_id: str = Field(min_length=1)
    context: SubmissionContext
    images: List[str] = Field(default_factory=list)
    submitter_id: Optional[str] = None
    action: Optional[RateLimitAction] = None

    def rate_limit_action(self) -> RateLimitAction:
        """Action the submission is rate limited under."""
        if self.action is not None:
            return self.action
        if self.content_type is ContentType.REVIEW:
            return RateLimitAction.REVIEW_SUBMISSION
        return RateLimitAction.LISTING_SUBMISSION

    def classification_request(self) -> ClassificationRequest:
        return ClassificationRequest(text=self.context.text or None, images=list(self.images))
