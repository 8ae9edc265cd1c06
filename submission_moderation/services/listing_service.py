"""
Listing and review mutations.
Every successful create, update and claim appends a version to the audit
trail, and the record's version field always matches its latest version.
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from submission_moderation.errors import (
    ClaimConflictError, ContentNotFoundError, OwnershipError, SubmissionValidationError
)
from submission_moderation.lib.stores import ContentStore, InMemoryContentStore
from submission_moderation.models.enums import ChangeType, ContentType, ListingStatus, ReviewStatus
from submission_moderation.models.queue import new_id
from submission_moderation.services.audit_trail import AuditTrail

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_PATTERN = re.compile(r'^[\+]?[1-9][\d]{0,15}$')

REQUIRED_LISTING_FIELDS = [
    ('name', 'Name is required'),
    ('description', 'Description is required'),
    ('street', 'Street address is required'),
    ('city', 'City is required'),
    ('state', 'State is required'),
    ('zip_code', 'ZIP code is required'),
    ('country', 'Country is required'),
]

# Fields callers may not set directly
PROTECTED_FIELDS = {'id', 'owner_id', 'status', 'version', 'created_at', 'updated_at'}


def generate_slug(text: str) -> str:
    slug = re.sub(r'[^a-z0-9\s-]', '', text.lower())
    slug = re.sub(r'\s+', '-', slug)
    slug = re.sub(r'-+', '-', slug)
    return slug.strip('-')


def city_state_composite(city: str, state: str) -> str:
    return f"{city}, {state}"


def category_status_composite(categories: Optional[List[str]], status: str) -> str:
    primary = categories[0] if categories else 'UNCATEGORIZED'
    return f"{primary}#{status}"


def _is_valid_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return bool(parsed.scheme and parsed.netloc)


def _is_valid_coordinate(value: Any, limit: float) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return -limit <= value <= limit


def validate_listing_input(data: Dict[str, Any]) -> List[str]:
    """Return human-readable validation errors; empty when the input is valid."""
    errors = []

    for field, message in REQUIRED_LISTING_FIELDS:
        value = data.get(field)
        if not isinstance(value, str) or not value.strip():
            errors.append(message)

    if not _is_valid_coordinate(data.get('latitude'), 90):
        errors.append('Valid latitude is required')
    if not _is_valid_coordinate(data.get('longitude'), 180):
        errors.append('Valid longitude is required')

    email = data.get('email')
    if email and not EMAIL_PATTERN.match(email):
        errors.append('Invalid email format')

    website = data.get('website')
    if website and not _is_valid_url(website):
        errors.append('Invalid website URL format')

    phone = data.get('phone')
    if phone and not PHONE_PATTERN.match(re.sub(r'[\s\-\(\)]', '', phone)):
        errors.append('Invalid phone number format')

    return errors


def _clean(data: Dict[str, Any]) -> Dict[str, Any]:
    """Strip string values and drop empty optional strings and protected keys."""
    cleaned = {}
    for key, value in data.items():
        if key in PROTECTED_FIELDS:
            continue
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        cleaned[key] = value
    return cleaned


class ListingService:
    """Create, update and claim listings; create reviews."""

    def __init__(self, content_store: Optional[ContentStore] = None, audit_trail: Optional[AuditTrail] = None):
        self.content_store = content_store or InMemoryContentStore()
        self.audit_trail = audit_trail or AuditTrail()

    def create_listing(self, data: Dict[str, Any], owner_id: Optional[str] = None) -> Dict[str, Any]:
        errors = validate_listing_input(data)
        if errors:
            raise SubmissionValidationError(errors)

        fields = _clean(data)
        now = datetime.utcnow().isoformat()
        status = ListingStatus.PENDING.value
        listing = {
            **fields,
            'id': new_id(),
            'slug': generate_slug(fields['name']),
            'city_state': city_state_composite(fields['city'], fields['state']),
            'category_status': category_status_composite(fields.get('categories'), status),
            'owner_id': owner_id,
            'status': status,
            'created_at': now,
            'updated_at': now,
        }

        version = self.audit_trail.record(
            entity_id=listing['id'],
            change_type=ChangeType.CREATE,
            changed_by=owner_id or 'guest',
            changes=fields,
            summary="Listing created",
        )
        listing['version'] = version.version
        self.content_store.put(ContentType.LISTING, listing)

        logger.info(f"Created listing {listing['id']} ({listing['slug']})")
        return listing

    def get_listing(self, listing_id: str) -> Dict[str, Any]:
        listing = self.content_store.get(ContentType.LISTING, listing_id)
        if listing is None:
            raise ContentNotFoundError(ContentType.LISTING.value, listing_id)
        return listing

    def update_listing(self, listing_id: str, data: Dict[str, Any], user_id: str) -> Dict[str, Any]:
        """Apply a partial update. Only the owner may update a listing."""
        current = self.get_listing(listing_id)
        if current.get('owner_id') != user_id:
            raise OwnershipError("You can only update listings you own")

        changes = _clean(data)
        merged = {**current, **changes}
        errors = validate_listing_input(merged)
        if errors:
            raise SubmissionValidationError(errors)

        derived = {
            'city_state': city_state_composite(merged['city'], merged['state']),
            'category_status': category_status_composite(merged.get('categories'), merged['status']),
        }
        if 'name' in changes:
            derived['slug'] = generate_slug(merged['name'])

        previous = {key: current.get(key) for key in changes}
        version = self.audit_trail.record(
            entity_id=listing_id,
            change_type=ChangeType.UPDATE,
            changed_by=user_id,
            changes=changes,
            previous_data=previous,
        )
        updated = {
            **merged,
            **derived,
            'version': version.version,
            'updated_at': datetime.utcnow().isoformat(),
        }
        self.content_store.put(ContentType.LISTING, updated)

        logger.info(f"Listing {listing_id} updated by {user_id} (v{version.version})")
        return updated

    def claim_listing(self, listing_id: str, user_id: str,
                      verification_data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Attach an unowned listing to user_id."""
        if not self.content_store.claim_owner(ContentType.LISTING, listing_id, user_id):
            raise ClaimConflictError(f"Listing {listing_id} is already claimed")

        changes: Dict[str, Any] = {'owner_id': user_id}
        if verification_data:
            changes['verification_data'] = verification_data

        version = self.audit_trail.record(
            entity_id=listing_id,
            change_type=ChangeType.CLAIM,
            changed_by=user_id,
            changes=changes,
            previous_data={'owner_id': None},
            summary="Listing claimed",
        )
        listing = self.get_listing(listing_id)
        listing.update({'version': version.version, 'updated_at': datetime.utcnow().isoformat()})
        self.content_store.put(ContentType.LISTING, listing)

        logger.info(f"Listing {listing_id} claimed by {user_id}")
        return listing

    def create_review(self, data: Dict[str, Any]) -> Dict[str, Any]:
        errors = []
        for field in ('listing_id', 'user_id'):
            if not data.get(field):
                errors.append(f"{field} is required")
        rating = data.get('rating')
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            errors.append('Rating must be an integer between 1 and 5')
        if errors:
            raise SubmissionValidationError(errors)

        self.get_listing(data['listing_id'])

        fields = _clean(data)
        now = datetime.utcnow().isoformat()
        review = {
            **fields,
            'id': new_id(),
            'status': ReviewStatus.PENDING.value,
            'created_at': now,
            'updated_at': now,
        }
        version = self.audit_trail.record(
            entity_id=review['id'],
            change_type=ChangeType.CREATE,
            changed_by=data['user_id'],
            changes=fields,
            summary="Review created",
        )
        review['version'] = version.version
        self.content_store.put(ContentType.REVIEW, review)

        logger.info(f"Created review {review['id']} for listing {data['listing_id']}")
        return review
