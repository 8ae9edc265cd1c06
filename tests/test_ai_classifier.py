"""
Tests for the AI classifier backends and the fallback wrapper.

Tests:
- Heuristic text checks (keywords, sentiment, PII)
- Image checks against a mocked HTTP transport
- Remote classifier response parsing and error mapping
- Timeout and error fallback
"""

import json
from typing import List

import httpx
import pytest

from submission_moderation.errors import ClassifierError
from submission_moderation.models.submission import AIAssessment, ClassificationRequest
from submission_moderation.services.ai_classifier import (
    HeuristicContentClassifier,
    ImageLabelDetector,
    ModerationLabel,
    PIIDetector,
    RemoteContentClassifier,
    SentimentAnalyzer,
    classify_with_fallback,
)
from tests.helpers import StubClassifier

CLASSIFIER_URL = "https://classifier.example/v1/classify"


def image_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path.endswith("ok.jpg"):
        return httpx.Response(200, headers={"content-type": "image/jpeg"})
    if path.endswith("page.html"):
        return httpx.Response(200, headers={"content-type": "text/html"})
    if path.endswith("down.jpg"):
        raise httpx.ConnectError("connection refused", request=request)
    return httpx.Response(404)


class FixedLabels(ImageLabelDetector):
    def __init__(self, labels: List[ModerationLabel]):
        self.labels = labels

    async def detect_labels(self, image_url):
        return self.labels


class TestTextAnalysis:

    @pytest.mark.asyncio
    async def test_clean_text_is_approved(self):
        result = await HeuristicContentClassifier().classify(
            ClassificationRequest(text="Friendly staff and great bread")
        )
        assert result.approved is True
        assert result.confidence == 1.0
        assert result.flags == []
        assert result.requires_human_review is False

    @pytest.mark.asyncio
    async def test_spam_keywords(self):
        result = await HeuristicContentClassifier().classify(
            ClassificationRequest(text="This place is a scam, click here for refunds")
        )
        assert "spam-keyword-scam" in result.flags
        assert "spam-keyword-click-here" in result.flags
        assert result.approved is False
        assert result.confidence == pytest.approx(0.6)
        assert result.requires_human_review is True

    @pytest.mark.asyncio
    async def test_pii_alone_does_not_require_review(self):
        result = await HeuristicContentClassifier().classify(
            ClassificationRequest(text="Email me at jane@example.com about the bakery")
        )
        assert result.flags == ["pii-detected-email"]
        assert result.confidence == pytest.approx(0.8)
        assert result.approved is False
        assert result.requires_human_review is False

    @pytest.mark.asyncio
    async def test_negative_sentiment(self):
        result = await HeuristicContentClassifier().classify(
            ClassificationRequest(text="Terrible food, awful service, rude staff")
        )
        assert "high-negative-sentiment" in result.flags
        assert result.details["text_analysis"]["details"]["sentiment"]["label"] == "NEGATIVE"

    def test_sentiment_analyzer(self):
        analyzer = SentimentAnalyzer()
        assert analyzer.analyze("nothing to say") == ("NEUTRAL", 0.0)
        assert analyzer.analyze("good and bad")[0] == "MIXED"
        assert analyzer.analyze("great, friendly, helpful")[0] == "POSITIVE"

    def test_pii_detector(self):
        detector = PIIDetector()
        assert detector.detect("call 555-201-4387") == ["PHONE"]
        assert "SSN" in detector.detect("ssn 123-45-6789")
        assert detector.detect("nothing here") == []


class TestImageAnalysis:

    @pytest.mark.asyncio
    async def test_accessible_image(self):
        async with httpx.AsyncClient(transport=httpx.MockTransport(image_handler)) as client:
            result = await HeuristicContentClassifier(http_client=client).classify(
                ClassificationRequest(images=["https://img.example/ok.jpg"])
            )
        assert result.approved is True
        assert result.flags == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url,flag,confidence", [
        ("https://img.example/missing.jpg", "image-not-accessible", 0.5),
        ("https://img.example/page.html", "invalid-image-type", 0.4),
        ("https://img.example/down.jpg", "image-accessibility-error", 0.6),
        ("ftp://img.example/ok.jpg", "invalid-image-url", 0.0),
    ])
    async def test_image_problems_become_flags(self, url, flag, confidence):
        async with httpx.AsyncClient(transport=httpx.MockTransport(image_handler)) as client:
            result = await HeuristicContentClassifier(http_client=client).classify(
                ClassificationRequest(images=[url])
            )
        assert result.flags == [flag]
        assert result.confidence == pytest.approx(confidence)
        assert result.approved is False

    @pytest.mark.asyncio
    async def test_label_detector(self):
        detector = FixedLabels([
            ModerationLabel("Explicit Nudity", 92.0),
            ModerationLabel("Suggestive", 65.0),
            ModerationLabel("Alcohol", 40.0),
        ])
        async with httpx.AsyncClient(transport=httpx.MockTransport(image_handler)) as client:
            classifier = HeuristicContentClassifier(http_client=client, label_detector=detector)
            result = await classifier.classify(ClassificationRequest(images=["https://img.example/ok.jpg"]))

        assert result.flags == [
            "inappropriate-content-explicit-nudity",
            "potential-inappropriate-content-suggestive",
        ]
        assert result.confidence == pytest.approx(0.3)
        assert result.requires_human_review is True

    @pytest.mark.asyncio
    async def test_text_and_images_combined(self):
        async with httpx.AsyncClient(transport=httpx.MockTransport(image_handler)) as client:
            result = await HeuristicContentClassifier(http_client=client).classify(
                ClassificationRequest(
                    text="Email me at jane@example.com",
                    images=["https://img.example/missing.jpg"],
                )
            )
        assert result.flags == ["pii-detected-email", "image-not-accessible"]
        assert result.confidence == pytest.approx(0.5)


class TestRemoteClassifier:

    @pytest.mark.asyncio
    async def test_parses_camel_case_response(self):
        seen = {}

        def handler(request):
            seen["payload"] = json.loads(request.content)
            return httpx.Response(200, json={
                "approved": False,
                "confidence": 0.65,
                "flags": ["spam-keyword-scam"],
                "requiresHumanReview": True,
                "moderationDetails": {"model": "v2"},
            })

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            classifier = RemoteContentClassifier(CLASSIFIER_URL, http_client=client)
            result = await classifier.classify(ClassificationRequest(text="hello"))

        assert seen["payload"] == {"text": "hello", "images": []}
        assert result == AIAssessment(
            approved=False, confidence=0.65, flags=["spam-keyword-scam"],
            requires_human_review=True, details={"model": "v2"},
        )

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(ClassifierError):
                await RemoteContentClassifier(CLASSIFIER_URL, http_client=client).classify(
                    ClassificationRequest(text="hello")
                )

    @pytest.mark.asyncio
    async def test_malformed_response_raises(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"approved": True}))
        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(ClassifierError):
                await RemoteContentClassifier(CLASSIFIER_URL, http_client=client).classify(
                    ClassificationRequest(text="hello")
                )

    @pytest.mark.asyncio
    async def test_non_json_response_raises(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>oops</html>"))
        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(ClassifierError):
                await RemoteContentClassifier(CLASSIFIER_URL, http_client=client).classify(
                    ClassificationRequest(text="hello")
                )


class TestFallback:

    @pytest.mark.asyncio
    async def test_success_passes_through(self):
        stub = StubClassifier()
        result = await classify_with_fallback(stub, ClassificationRequest(text="hi"), timeout_seconds=1.0)
        assert result is stub.assessment
        assert len(stub.calls) == 1

    @pytest.mark.asyncio
    async def test_timeout_degrades(self):
        stub = StubClassifier(delay=0.5)
        result = await classify_with_fallback(stub, ClassificationRequest(text="hi"), timeout_seconds=0.05)

        assert result.flags == ["ai-moderation-error"]
        assert result.confidence == 0.5
        assert result.approved is False
        assert result.requires_human_review is True
        assert result.details == {"error": "timeout"}

    @pytest.mark.asyncio
    async def test_error_degrades_without_retry(self):
        stub = StubClassifier(error=ClassifierError("classifier unavailable"))
        result = await classify_with_fallback(
            stub, ClassificationRequest(text="hi"), timeout_seconds=1.0, fallback_confidence=0.3
        )

        assert result.flags == ["ai-moderation-error"]
        assert result.confidence == 0.3
        assert len(stub.calls) == 1
