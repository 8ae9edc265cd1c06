"""
Tests for ListingService and the audit trail entries it writes.
"""

import pytest

from submission_moderation.errors import (
    ClaimConflictError, ContentNotFoundError, OwnershipError, SubmissionValidationError
)
from submission_moderation.models.enums import ChangeType, ContentType, ModerationDecision
from submission_moderation.models.queue import ModerationItem
from submission_moderation.services.listing_service import generate_slug, validate_listing_input
from tests.helpers import VALID_LISTING


@pytest.fixture
def listings(services):
    return services.listing_service


class TestValidation:

    def test_valid_listing(self):
        assert validate_listing_input(VALID_LISTING) == []

    def test_missing_fields(self):
        errors = validate_listing_input({})
        assert "Name is required" in errors
        assert "ZIP code is required" in errors
        assert "Valid latitude is required" in errors
        assert "Valid longitude is required" in errors

    def test_blank_name_is_missing(self):
        assert "Name is required" in validate_listing_input({**VALID_LISTING, "name": "   "})

    @pytest.mark.parametrize("field,value,message", [
        ("email", "not-an-email", "Invalid email format"),
        ("website", "rosecity", "Invalid website URL format"),
        ("phone", "call me", "Invalid phone number format"),
        ("latitude", 91, "Valid latitude is required"),
        ("longitude", "west", "Valid longitude is required"),
    ])
    def test_malformed_values(self, field, value, message):
        assert validate_listing_input({**VALID_LISTING, field: value}) == [message]

    def test_slug(self):
        assert generate_slug("Joe's Café & Bar!!  Downtown") == "joes-caf-bar-downtown"


class TestCreateListing:

    def test_derived_fields(self, services, listing):
        assert listing["slug"] == "rose-city-bakery"
        assert listing["city_state"] == "Portland, OR"
        assert listing["category_status"] == "Food#PENDING"
        assert listing["status"] == "PENDING"
        assert listing["owner_id"] == "owner-1"
        assert listing["version"] == 1

        history = services.audit_trail.history(listing["id"])
        assert len(history) == 1
        assert history[0].change_type is ChangeType.CREATE
        assert history[0].change_summary == "Listing created"
        assert history[0].changed_by == "owner-1"

    def test_strips_strings_and_ignores_protected_fields(self, listings):
        created = listings.create_listing({**VALID_LISTING, "name": "  Rose City Bakery ", "status": "PUBLISHED"})
        assert created["name"] == "Rose City Bakery"
        assert created["status"] == "PENDING"

    def test_uncategorized(self, listings):
        data = {k: v for k, v in VALID_LISTING.items() if k != "categories"}
        assert listings.create_listing(data)["category_status"] == "UNCATEGORIZED#PENDING"

    def test_invalid_listing_rejected(self, listings):
        with pytest.raises(SubmissionValidationError) as exc_info:
            listings.create_listing({**VALID_LISTING, "email": "bad"})
        assert exc_info.value.errors == ["Invalid email format"]


class TestUpdateListing:

    def test_owner_update(self, services, listings, listing):
        updated = listings.update_listing(listing["id"], {"description": "Now with croissants."}, "owner-1")

        assert updated["description"] == "Now with croissants."
        assert updated["version"] == 2

        latest = services.audit_trail.history(listing["id"])[-1]
        assert latest.change_type is ChangeType.UPDATE
        assert latest.change_summary == "Updated description"
        assert latest.previous_data == {"description": VALID_LISTING["description"]}

    def test_rename_refreshes_slug(self, listings, listing):
        updated = listings.update_listing(listing["id"], {"name": "Rose City Bread Co"}, "owner-1")
        assert updated["slug"] == "rose-city-bread-co"

    def test_relocation_refreshes_city_state(self, listings, listing):
        updated = listings.update_listing(listing["id"], {"city": "Salem"}, "owner-1")
        assert updated["city_state"] == "Salem, OR"

    def test_non_owner_rejected(self, services, listings, listing):
        with pytest.raises(OwnershipError):
            listings.update_listing(listing["id"], {"name": "Hijacked"}, "someone-else")
        assert len(services.audit_trail.history(listing["id"])) == 1

    def test_invalid_update_keeps_version(self, services, listings, listing):
        with pytest.raises(SubmissionValidationError):
            listings.update_listing(listing["id"], {"website": "nope"}, "owner-1")
        assert listings.get_listing(listing["id"])["version"] == 1

    def test_missing_listing(self, listings):
        with pytest.raises(ContentNotFoundError):
            listings.update_listing("missing", {"name": "x"}, "owner-1")


class TestClaimListing:

    def test_claim_unowned_listing(self, services, listings):
        created = listings.create_listing(dict(VALID_LISTING))

        claimed = listings.claim_listing(created["id"], "new-owner", {"method": "phone"})

        assert claimed["owner_id"] == "new-owner"
        assert claimed["version"] == 2
        latest = services.audit_trail.history(created["id"])[-1]
        assert latest.change_type is ChangeType.CLAIM
        assert latest.change_summary == "Listing claimed"
        assert latest.changes == {"owner_id": "new-owner", "verification_data": {"method": "phone"}}

    def test_second_claim_conflicts(self, listings):
        created = listings.create_listing(dict(VALID_LISTING))
        listings.claim_listing(created["id"], "first")

        with pytest.raises(ClaimConflictError):
            listings.claim_listing(created["id"], "second")
        assert listings.get_listing(created["id"])["owner_id"] == "first"

    def test_owned_listing_cannot_be_claimed(self, listings, listing):
        with pytest.raises(ClaimConflictError):
            listings.claim_listing(listing["id"], "someone-else")

    def test_claim_missing_listing(self, listings):
        with pytest.raises(ContentNotFoundError):
            listings.claim_listing("missing", "u-1")


class TestCreateReview:

    def test_create_review(self, services, listings, listing):
        review = listings.create_review({"listing_id": listing["id"], "user_id": "u-7", "rating": 4, "comment": "Nice"})

        assert review["status"] == "PENDING"
        assert review["version"] == 1
        history = services.audit_trail.history(review["id"])
        assert history[0].change_summary == "Review created"
        assert history[0].changed_by == "u-7"

    @pytest.mark.parametrize("rating", [0, 6, "5", 4.5, True, None])
    def test_invalid_rating(self, listings, listing, rating):
        with pytest.raises(SubmissionValidationError) as exc_info:
            listings.create_review({"listing_id": listing["id"], "user_id": "u-7", "rating": rating})
        assert exc_info.value.errors == ["Rating must be an integer between 1 and 5"]

    def test_review_requires_existing_listing(self, listings):
        with pytest.raises(ContentNotFoundError):
            listings.create_review({"listing_id": "missing", "user_id": "u-7", "rating": 3})


class TestVersionHistory:

    def test_moderation_approval_appends_status_change(self, services, listings, listing):
        listings.update_listing(listing["id"], {"phone": "(503) 555-0199"}, "owner-1")
        item = services.queue.create_item(ModerationItem(content_type=ContentType.LISTING, content_id=listing["id"]))

        services.queue.submit_decision(item.id, ModerationDecision.APPROVE, "mod-1")

        history = services.audit_trail.history(listing["id"])
        assert [v.change_type for v in history] == [ChangeType.CREATE, ChangeType.UPDATE, ChangeType.STATUS_CHANGE]
        assert [v.version for v in history] == [1, 2, 3]

        stored = listings.get_listing(listing["id"])
        assert stored["version"] == 3
        assert stored["category_status"] == "Food#PUBLISHED"
