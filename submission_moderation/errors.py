"""
Exceptions raised by the moderation pipeline.
"""

from typing import List, Optional


class ModerationError(Exception):
    """Base class for all pipeline errors."""


class SubmissionValidationError(ModerationError):
    """A submission is missing required fields or carries malformed values."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid submission")


class ItemNotFoundError(ModerationError):
    """No moderation queue item with the given id."""

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Moderation item {item_id} not found")


class TransitionConflictError(ModerationError):
    """A decision was applied to an item that is no longer PENDING."""

    def __init__(self, item_id: str, status: str):
        self.item_id = item_id
        self.status = status
        super().__init__(f"Moderation item {item_id} is already {status}")


class ContentNotFoundError(ModerationError):
    """The referenced listing or review does not exist."""

    def __init__(self, content_type: str, content_id: str):
        self.content_type = content_type
        self.content_id = content_id
        super().__init__(f"{content_type} {content_id} not found")


class OwnershipError(ModerationError):
    """The caller does not own the content it tried to change."""


class ClaimConflictError(ModerationError):
    """The listing already has an owner."""


class ClassifierError(ModerationError):
    """The AI classifier could not produce an assessment."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)
