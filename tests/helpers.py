"""
Test doubles and sample payloads shared across the test suite.
"""

import asyncio
from typing import List, Optional

from submission_moderation.models.enums import ContentType
from submission_moderation.models.submission import AIAssessment, ClassificationRequest
from submission_moderation.services.ai_classifier import ContentClassifier


class StubClassifier(ContentClassifier):
    """Returns a fixed assessment, or fails, and records every request."""

    def __init__(self, assessment: Optional[AIAssessment] = None,
                 error: Optional[Exception] = None, delay: float = 0.0):
        self.assessment = assessment or AIAssessment(approved=True, confidence=0.95, flags=[])
        self.error = error
        self.delay = delay
        self.calls: List[ClassificationRequest] = []

    async def classify(self, request):
        self.calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.assessment


class FakeClock:
    """Controllable epoch-seconds clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.items = []

    def notify(self, item):
        if self.fail:
            raise RuntimeError("alert topic unavailable")
        self.items.append(item)
        return True


BENIGN_CONTEXT = {
    "identifier": "203.0.113.7",
    "text": "Lovely little bakery with fresh bread every morning.",
    "email": "jane.doe@gmail.com",
    "honeypot_fields": {},
    "submission_time_ms": 30000,
    "user_agent": "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0",
}

SPAM_CONTEXT = {
    "identifier": "198.51.100.9",
    "text": "BUY NOW!!! GUARANTEED MONEY!!!",
    "email": "bot@tempmail.com",
    "honeypot_fields": {"website_url": "http://spam.example"},
    "submission_time_ms": 500,
}

VALID_LISTING = {
    "name": "Rose City Bakery",
    "description": "Neighbourhood bakery and coffee bar.",
    "street": "12 NW Couch St",
    "city": "Portland",
    "state": "OR",
    "zip_code": "97209",
    "country": "US",
    "latitude": 45.52,
    "longitude": -122.67,
    "email": "hello@rosecity.example.com",
    "phone": "(503) 555-0147",
    "website": "https://rosecity.example.com",
    "categories": ["Food", "Coffee"],
}


def make_submission(content_id: str, context: dict, content_type: ContentType = ContentType.LISTING, **extra):
    return {
        "content_type": content_type.value,
        "content_id": content_id,
        "context": dict(context),
        **extra,
    }
