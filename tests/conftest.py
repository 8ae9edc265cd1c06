"""
Shared pytest fixtures for the moderation test suite.
All fixtures run against the in-memory stores.
"""

import pytest

from submission_moderation.bootstrap import build_services
from submission_moderation.config import ModerationConfig, Settings
from tests.helpers import StubClassifier, VALID_LISTING


@pytest.fixture
def stub_classifier():
    return StubClassifier()


@pytest.fixture
def services(stub_classifier):
    return build_services(Settings(store_backend="memory"), ModerationConfig(), classifier=stub_classifier)


@pytest.fixture
def listing(services):
    return services.listing_service.create_listing(dict(VALID_LISTING), owner_id="owner-1")
