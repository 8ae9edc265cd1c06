"""
Enumeration definitions for the submission moderation pipeline.
Content kinds, queue states, priorities, moderator decisions and audit tags.
"""

from enum import Enum, IntEnum


class ListingStatus(str, Enum):
    """Publish status of a business listing."""
    PENDING = "PENDING"
    PUBLISHED = "PUBLISHED"
    DRAFT = "DRAFT"
    ARCHIVED = "ARCHIVED"


class ReviewStatus(str, Enum):
    """Publish status of a review."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ContentType(str, Enum):
    """
    Kinds of user content that flow through moderation.
    Each member carries the status its content is moved to when a moderator
    approves it (published) or rejects it (hidden).
    """
    LISTING = ("LISTING", ListingStatus.PUBLISHED.value, ListingStatus.ARCHIVED.value)
    REVIEW = ("REVIEW", ReviewStatus.APPROVED.value, ReviewStatus.REJECTED.value)

    def __new__(cls, value: str, published_status: str, hidden_status: str):
        obj = str.__new__(cls, value)
        obj._value_ = value
        obj.published_status = published_status
        obj.hidden_status = hidden_status
        return obj


class QueueStatus(str, Enum):
    """Status of a moderation queue item."""
    PENDING = "PENDING"       # Awaiting a moderator
    APPROVED = "APPROVED"     # Content published
    REJECTED = "REJECTED"     # Content hidden
    ESCALATED = "ESCALATED"   # Routed to a secondary reviewer

    @property
    def is_terminal(self) -> bool:
        return self is not QueueStatus.PENDING


class ReviewPriority(IntEnum):
    """
    Priority levels for the human review queue.
    Higher values are reviewed first.
    """
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    URGENT = 4

    @classmethod
    def parse(cls, value) -> "ReviewPriority":
        """Accept a member, its integer rank or its name (any case)."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str) and not value.isdigit():
            return cls[value.strip().upper()]
        return cls(int(value))


class ModerationDecision(str, Enum):
    """Decision a moderator applies to a PENDING item."""
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    ESCALATE = "ESCALATE"

    @property
    def target_status(self) -> QueueStatus:
        return {
            ModerationDecision.APPROVE: QueueStatus.APPROVED,
            ModerationDecision.REJECT: QueueStatus.REJECTED,
            ModerationDecision.ESCALATE: QueueStatus.ESCALATED,
        }[self]


class ChangeType(str, Enum):
    """Kind of mutation recorded in the audit trail."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    CLAIM = "CLAIM"
    STATUS_CHANGE = "STATUS_CHANGE"


class RateLimitAction(str, Enum):
    """Rate-limited user actions."""
    LISTING_SUBMISSION = "listing_submission"
    REVIEW_SUBMISSION = "review_submission"
    CONTACT_FORM = "contact_form"


class PipelineOutcome(str, Enum):
    """Final outcome of running one submission through the pipeline."""
    AUTO_APPROVED = "auto_approved"   # Published without human review
    QUEUED = "queued"                 # PENDING item created
    REJECTED = "rejected"             # Spam floor hit, content hidden
    RATE_LIMITED = "rate_limited"     # Denied before any scoring
