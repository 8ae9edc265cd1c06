"""
Moderation Queue Service.
Holds one item per moderated submission and applies moderator decisions.

State machine: PENDING -> APPROVED | REJECTED | ESCALATED. All three targets
are terminal. APPROVE publishes the content, REJECT hides it, ESCALATE only
routes the item to a secondary reviewer.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from submission_moderation.errors import (
    ContentNotFoundError, ItemNotFoundError, ModerationError, TransitionConflictError
)
from submission_moderation.lib.metrics import metrics
from submission_moderation.lib.stores import (
    ContentStore, ModerationItemStore, InMemoryContentStore, InMemoryModerationItemStore
)
from submission_moderation.models.enums import (
    ChangeType, ContentType, ModerationDecision, QueueStatus, ReviewPriority
)
from submission_moderation.models.queue import DecisionResult, ModerationItem, QueueStats
from submission_moderation.services.audit_trail import AuditTrail
from submission_moderation.services.listing_service import category_status_composite

logger = logging.getLogger(__name__)


class ModerationQueue:
    """
    Queue operations for reviewers.
    Item transitions are compare-and-set on PENDING, so concurrent decisions
    on one item resolve it exactly once.
    """

    def __init__(
        self,
        item_store: Optional[ModerationItemStore] = None,
        content_store: Optional[ContentStore] = None,
        audit_trail: Optional[AuditTrail] = None,
    ):
        self.item_store = item_store or InMemoryModerationItemStore()
        self.content_store = content_store or InMemoryContentStore()
        self.audit_trail = audit_trail or AuditTrail()

    def create_item(self, item: ModerationItem) -> ModerationItem:
        self.item_store.add(item)
        logger.info(
            f"Queued {item.content_type.value} {item.content_id} as {item.status.value} "
            f"(priority {item.priority.name}, item {item.id})"
        )
        self._refresh_queue_depth()
        return item

    def get_item(self, item_id: str) -> ModerationItem:
        item = self.item_store.get(item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        return item

    def list_items(
        self,
        status: Optional[QueueStatus] = None,
        content_type: Optional[ContentType] = None,
        priority: Optional[ReviewPriority] = None,
    ) -> List[ModerationItem]:
        """Filtered items, most urgent first, then newest first."""
        items = self.item_store.list(status=status, content_type=content_type, priority=priority)
        return sorted(items, key=lambda item: (item.priority, item.created_at), reverse=True)

    def snapshot_content(self, content_type: ContentType, content_id: str) -> Dict[str, Any]:
        """Point-in-time copy of the content; empty when it cannot be read."""
        try:
            return self.content_store.get(content_type, content_id) or {}
        except Exception as e:
            logger.error(f"Error creating content snapshot for {content_type.value} {content_id}: {e}")
            return {}

    def set_content_status(
        self,
        content_type: ContentType,
        content_id: str,
        status: str,
        changed_by: str,
    ) -> Dict[str, Any]:
        """Move content to a publish status and record the change."""
        previous = self.content_store.get(content_type, content_id)
        if previous is None:
            raise ContentNotFoundError(content_type.value, content_id)

        record = self.content_store.set_status(content_type, content_id, status)
        version = self.audit_trail.record(
            entity_id=content_id,
            change_type=ChangeType.STATUS_CHANGE,
            changed_by=changed_by,
            changes={'status': status},
            previous_data={'status': previous.get('status')},
        )
        refreshed = {'version': version.version, 'updated_at': datetime.utcnow().isoformat()}
        if 'category_status' in record:
            refreshed['category_status'] = category_status_composite(record.get('categories'), status)
        return self.content_store.put(content_type, {**record, **refreshed})

    def submit_decision(
        self,
        item_id: str,
        decision: ModerationDecision,
        moderator_id: str,
        notes: Optional[str] = None,
        escalated_to: Optional[str] = None,
        escalation_reason: Optional[str] = None,
    ) -> ModerationItem:
        """
        Apply a moderator decision to a PENDING item.
        Raises ItemNotFoundError, TransitionConflictError or ContentNotFoundError.
        """
        decision = ModerationDecision(decision)
        current = self.get_item(item_id)
        if current.status is not QueueStatus.PENDING:
            metrics.record_decision(decision.value, "conflict")
            raise TransitionConflictError(item_id, current.status.value)

        if decision is not ModerationDecision.ESCALATE:
            if self.content_store.get(current.content_type, current.content_id) is None:
                metrics.record_decision(decision.value, "not_found")
                raise ContentNotFoundError(current.content_type.value, current.content_id)

        now = datetime.utcnow()
        updates: Dict[str, Any] = {
            'status': decision.target_status,
            'moderator_id': moderator_id,
            'moderation_decision': decision,
            'moderation_notes': notes,
            'moderation_date': now,
        }
        if decision is ModerationDecision.ESCALATE:
            updates.update({
                'escalated_to': escalated_to,
                'escalation_reason': escalation_reason or notes,
                'escalation_date': now,
            })

        try:
            item = self.item_store.transition(item_id, updates)
        except TransitionConflictError:
            metrics.record_decision(decision.value, "conflict")
            raise

        if decision is not ModerationDecision.ESCALATE:
            status = (item.content_type.published_status if decision is ModerationDecision.APPROVE
                      else item.content_type.hidden_status)
            try:
                self.set_content_status(item.content_type, item.content_id, status, moderator_id)
            except Exception as e:
                # Reopen the item so the decision can be retried
                logger.error(f"Failed to apply {decision.value} to {item.content_type.value} "
                             f"{item.content_id}, item {item_id} returned to PENDING: {e}")
                self.item_store.restore(current)
                metrics.record_decision(decision.value, "error")
                raise

        metrics.record_decision(decision.value, "success")
        logger.info(f"Moderator {moderator_id} applied {decision.value} to item {item_id}")
        self._refresh_queue_depth()
        return item

    async def submit_bulk_decision(
        self,
        item_ids: Iterable[str],
        decision: ModerationDecision,
        moderator_id: str,
        notes: Optional[str] = None,
    ) -> List[DecisionResult]:
        """
        Apply one decision and note to many items concurrently.
        Each item succeeds or fails on its own; results follow input order.
        """
        decision = ModerationDecision(decision)

        async def decide(item_id: str) -> DecisionResult:
            try:
                item = await asyncio.to_thread(
                    self.submit_decision, item_id, decision, moderator_id, notes
                )
                return DecisionResult(item_id=item_id, success=True, item=item)
            except TransitionConflictError as e:
                return DecisionResult(item_id=item_id, success=False, error=str(e), error_code="conflict")
            except (ItemNotFoundError, ContentNotFoundError) as e:
                return DecisionResult(item_id=item_id, success=False, error=str(e), error_code="not_found")
            except ModerationError as e:
                return DecisionResult(item_id=item_id, success=False, error=str(e), error_code="error")
            except Exception as e:
                logger.error(f"Bulk decision failed for item {item_id}: {e}")
                return DecisionResult(item_id=item_id, success=False, error=str(e), error_code="error")

        results = await asyncio.gather(*(decide(item_id) for item_id in item_ids))
        succeeded = sum(1 for r in results if r.success)
        logger.info(f"Bulk {decision.value} by {moderator_id}: {succeeded}/{len(results)} succeeded")
        return list(results)

    def stats(self) -> QueueStats:
        counts = self.item_store.counts()
        stats = QueueStats()
        for (status, priority), count in counts.items():
            stats.by_status[status] = stats.by_status.get(status, 0) + count
            if status == QueueStatus.PENDING.value:
                stats.pending_by_priority[priority] = stats.pending_by_priority.get(priority, 0) + count
            stats.total += count
        return stats

    def _refresh_queue_depth(self) -> None:
        try:
            pending = self.stats().pending_by_priority
            for priority in ReviewPriority:
                metrics.update_queue_depth(priority.name, pending.get(priority.name, 0))
        except Exception as e:
            logger.warning(f"Could not refresh queue depth gauge: {e}")
