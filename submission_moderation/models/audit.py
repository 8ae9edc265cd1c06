"""
Audit trail data models.
"""

from datetime import datetime
from typing import Optional, Dict, Any
from uuid import uuid4

from pydantic import BaseModel, Field

from submission_moderation.models.enums import ChangeType


class ContentVersion(BaseModel):
    """
    Immutable record of one successful mutation to a listing or review.
    Version numbers start at 1 and increase by 1 per entity.
    """
    id: str = Field(default_factory=lambda: str(uuid4()))
    entity_id: str
    version: int = Field(ge=1)
    change_type: ChangeType
    changed_by: str
    change_summary: str
    changes: Dict[str, Any] = Field(default_factory=dict)
    previous_data: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
