"""
Storage interfaces used by the moderation services, plus in-memory
implementations. PostgreSQL implementations live in lib/database.py.

Every method that reads and then writes one record is atomic: the in-memory
stores hold a lock, the database stores use conditional statements.
"""

import copy
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Tuple

from submission_moderation.errors import (
    ContentNotFoundError, ItemNotFoundError, TransitionConflictError
)
from submission_moderation.models.audit import ContentVersion
from submission_moderation.models.enums import ContentType, QueueStatus, ReviewPriority
from submission_moderation.models.queue import ModerationItem
from submission_moderation.models.rate_limit import RateLimitEntry


class ContentStore(ABC):
    """Listings and reviews, keyed by (content type, id)."""

    @abstractmethod
    def get(self, content_type: ContentType, content_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def put(self, content_type: ContentType, record: Dict[str, Any]) -> Dict[str, Any]:
        """Insert or replace a record; record must carry an 'id'."""

    @abstractmethod
    def set_status(self, content_type: ContentType, content_id: str, status: str) -> Dict[str, Any]:
        """Set the publish status; raises ContentNotFoundError."""

    @abstractmethod
    def claim_owner(self, content_type: ContentType, content_id: str, owner_id: str) -> bool:
        """Set owner_id only if unset. Returns False when already owned."""


class ModerationItemStore(ABC):
    """Moderation queue items."""

    @abstractmethod
    def add(self, item: ModerationItem) -> ModerationItem:
        pass

    @abstractmethod
    def get(self, item_id: str) -> Optional[ModerationItem]:
        pass

    @abstractmethod
    def transition(self, item_id: str, updates: Dict[str, Any]) -> ModerationItem:
        """
        Apply updates to a PENDING item and return it.
        Raises ItemNotFoundError, or TransitionConflictError if not PENDING.
        """

    @abstractmethod
    def restore(self, item: ModerationItem) -> ModerationItem:
        """Overwrite a stored item with an earlier copy of itself."""

    @abstractmethod
    def list(
        self,
        status: Optional[QueueStatus] = None,
        content_type: Optional[ContentType] = None,
        priority: Optional[ReviewPriority] = None,
    ) -> List[ModerationItem]:
        pass

    @abstractmethod
    def counts(self) -> Dict[Tuple[str, str], int]:
        """Item counts keyed by (status, priority name)."""


class VersionStore(ABC):
    """Append-only content version history."""

    @abstractmethod
    def append(self, entity_id: str, build: Callable[[int], ContentVersion]) -> ContentVersion:
        """
        Build the record for the next version number and store it.
        The number is consumed only if the record is stored.
        """

    @abstractmethod
    def list(self, entity_id: str) -> List[ContentVersion]:
        pass


class RateLimitStore(ABC):
    """Attempt counters per (identifier, action) bucket."""

    @abstractmethod
    def hit(self, identifier: str, action: str, now: float, window_seconds: float) -> RateLimitEntry:
        """
        Record one attempt and return the bucket after it.
        Resets the bucket when its window has elapsed.
        """

    @abstractmethod
    def cleanup(self, now: float, windows: Dict[str, float]) -> int:
        """Remove buckets whose window has elapsed. Returns the number removed."""


class InMemoryContentStore(ContentStore):

    def __init__(self):
        self._records: Dict[Tuple[ContentType, str], Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, content_type, content_id):
        with self._lock:
            record = self._records.get((content_type, content_id))
            return copy.deepcopy(record) if record is not None else None

    def put(self, content_type, record):
        with self._lock:
            self._records[(content_type, record['id'])] = copy.deepcopy(record)
            return copy.deepcopy(record)

    def set_status(self, content_type, content_id, status):
        with self._lock:
            record = self._records.get((content_type, content_id))
            if record is None:
                raise ContentNotFoundError(content_type.value, content_id)
            record['status'] = status
            return copy.deepcopy(record)

    def claim_owner(self, content_type, content_id, owner_id):
        with self._lock:
            record = self._records.get((content_type, content_id))
            if record is None:
                raise ContentNotFoundError(content_type.value, content_id)
            if record.get('owner_id'):
                return False
            record['owner_id'] = owner_id
            return True


class InMemoryModerationItemStore(ModerationItemStore):

    def __init__(self):
        self._items: Dict[str, ModerationItem] = {}
        self._lock = threading.Lock()

    def add(self, item):
        with self._lock:
            self._items[item.id] = item.model_copy(deep=True)
        return item

    def get(self, item_id):
        with self._lock:
            item = self._items.get(item_id)
            return item.model_copy(deep=True) if item is not None else None

    def transition(self, item_id, updates):
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                raise ItemNotFoundError(item_id)
            if item.status is not QueueStatus.PENDING:
                raise TransitionConflictError(item_id, item.status.value)
            updated = item.model_copy(update=updates, deep=True)
            self._items[item_id] = updated
            return updated.model_copy(deep=True)

    def restore(self, item):
        with self._lock:
            self._items[item.id] = item.model_copy(deep=True)
        return item

    def list(self, status=None, content_type=None, priority=None):
        with self._lock:
            items = list(self._items.values())
        return [
            item.model_copy(deep=True)
            for item in items
            if (status is None or item.status == status)
            and (content_type is None or item.content_type == content_type)
            and (priority is None or item.priority == priority)
        ]

    def counts(self):
        result: Dict[Tuple[str, str], int] = defaultdict(int)
        with self._lock:
            for item in self._items.values():
                result[(item.status.value, item.priority.name)] += 1
        return dict(result)


class InMemoryVersionStore(VersionStore):

    def __init__(self):
        self._versions: Dict[str, List[ContentVersion]] = defaultdict(list)
        self._lock = threading.Lock()

    def append(self, entity_id, build):
        with self._lock:
            history = self._versions[entity_id]
            next_version = history[-1].version + 1 if history else 1
            record = build(next_version)
            history.append(record)
            return record

    def list(self, entity_id):
        with self._lock:
            return list(self._versions.get(entity_id, []))


class InMemoryRateLimitStore(RateLimitStore):
    """
    Process-local counters. Buckets do not survive restarts and are not
    shared between instances; use PostgresRateLimitStore for that.
    """

    def __init__(self):
        self._buckets: Dict[Tuple[str, str], RateLimitEntry] = {}
        self._lock = threading.Lock()

    def hit(self, identifier, action, now, window_seconds):
        key = (identifier, action)
        with self._lock:
            entry = self._buckets.get(key)
            if entry is None or now - entry.window_start > window_seconds:
                entry = RateLimitEntry(identifier=identifier, action=action, count=1, window_start=now)
            else:
                entry = entry.model_copy(update={'count': entry.count + 1})
            self._buckets[key] = entry
            return entry.model_copy()

    def cleanup(self, now, windows):
        removed = 0
        with self._lock:
            for key in list(self._buckets):
                entry = self._buckets[key]
                window = windows.get(entry.action)
                if window is not None and now - entry.window_start > window:
                    del self._buckets[key]
                    removed += 1
        return removed
