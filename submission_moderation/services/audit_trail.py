"""
Audit Trail - append-only version history for listings and reviews.
"""

import logging
from typing import Any, Dict, List, Optional

from submission_moderation.lib.stores import VersionStore, InMemoryVersionStore
from submission_moderation.models.audit import ContentVersion
from submission_moderation.models.enums import ChangeType

logger = logging.getLogger(__name__)

# Bookkeeping fields that never count as a change
IGNORED_FIELDS = {'updated_at', 'updatedAt', 'version'}


def generate_change_summary(changes: Dict[str, Any]) -> str:
    """Human-readable description of which fields changed."""
    changed_fields = [key for key in changes if key not in IGNORED_FIELDS]

    if not changed_fields:
        return "Minor update"

    if len(changed_fields) == 1:
        return f"Updated {changed_fields[0]}"

    if len(changed_fields) <= 3:
        return f"Updated {', '.join(changed_fields)}"

    return f"Updated {len(changed_fields)} fields"


class AuditTrail:
    """Records one ContentVersion per successful mutation."""

    def __init__(self, store: Optional[VersionStore] = None):
        self.store = store or InMemoryVersionStore()

    def record(
        self,
        entity_id: str,
        change_type: ChangeType,
        changed_by: str,
        changes: Dict[str, Any],
        previous_data: Optional[Dict[str, Any]] = None,
        summary: Optional[str] = None,
    ) -> ContentVersion:
        """Append the next version for entity_id."""
        change_summary = summary or generate_change_summary(changes)

        def build(version: int) -> ContentVersion:
            return ContentVersion(
                entity_id=entity_id,
                version=version,
                change_type=change_type,
                changed_by=changed_by,
                change_summary=change_summary,
                changes=changes,
                previous_data=previous_data,
            )

        record = self.store.append(entity_id, build)
        logger.debug(f"Recorded {change_type.value} v{record.version} for {entity_id}: {change_summary}")
        return record

    def history(self, entity_id: str) -> List[ContentVersion]:
        """Versions for an entity, oldest first."""
        return sorted(self.store.list(entity_id), key=lambda v: v.version)
