"""
AI Classifier - content assessment behind a service boundary.

ContentClassifier is the contract the pipeline depends on. Two backends ship:
HeuristicContentClassifier runs keyword, sentiment, PII and image checks in
process; RemoteContentClassifier calls an HTTP classification endpoint.
classify_with_fallback() wraps any backend with a timeout and converts every
failure into a conservative assessment that always requires human review.
"""

import asyncio
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import httpx

from submission_moderation.errors import ClassifierError
from submission_moderation.lib.metrics import metrics
from submission_moderation.models.submission import AIAssessment, ClassificationRequest

logger = logging.getLogger(__name__)

# Below this confidence a flagged result needs a human
HUMAN_REVIEW_CONFIDENCE_THRESHOLD = 0.8


class ContentClassifier(ABC):
    """Contract for AI content classification."""

    @abstractmethod
    async def classify(self, request: ClassificationRequest) -> AIAssessment:
        """Assess text and/or images. May raise; callers use classify_with_fallback."""


@dataclass
class ModerationLabel:
    """One label from an image moderation model, confidence in percent."""
    name: str
    confidence: float


class ImageLabelDetector(ABC):
    """Image moderation model, e.g. a hosted vision endpoint."""

    @abstractmethod
    async def detect_labels(self, image_url: str) -> List[ModerationLabel]:
        pass


class SentimentAnalyzer:
    """
    Lexicon sentiment scoring.
    Returns (label, negative_score) where negative_score is the share of
    sentiment-bearing words that are negative.
    """

    POSITIVE_WORDS = {
        'good', 'great', 'love', 'happy', 'wonderful', 'excellent',
        'friendly', 'recommend', 'amazing', 'helpful',
    }
    NEGATIVE_WORDS = {
        'bad', 'hate', 'sad', 'terrible', 'awful', 'worst',
        'horrible', 'disgusting', 'rude', 'useless',
    }
    WORD_PATTERN = re.compile(r"[a-z']+")

    def analyze(self, text: str) -> Tuple[str, float]:
        words = self.WORD_PATTERN.findall(text.lower())
        pos_count = sum(1 for w in words if w in self.POSITIVE_WORDS)
        neg_count = sum(1 for w in words if w in self.NEGATIVE_WORDS)

        if pos_count + neg_count == 0:
            return ("NEUTRAL", 0.0)

        negative = neg_count / (pos_count + neg_count)
        label = "NEGATIVE" if neg_count > pos_count else "POSITIVE" if pos_count > neg_count else "MIXED"
        return (label, negative)


class PIIDetector:
    """Regex detection of contact and financial identifiers in free text."""

    PATTERNS = {
        'EMAIL': re.compile(r'[\w.+-]+@[\w-]+\.[\w.-]+'),
        'PHONE': re.compile(r'(?:\+?\d{1,2}[\s.-]?)?\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}\b'),
        'SSN': re.compile(r'\b\d{3}-\d{2}-\d{4}\b'),
        'CREDIT_DEBIT_NUMBER': re.compile(r'\b(?:\d[ -]?){13,16}\b'),
    }

    def detect(self, text: str) -> List[str]:
        return [entity for entity, pattern in self.PATTERNS.items() if pattern.search(text)]


class HeuristicContentClassifier(ContentClassifier):
    """
    In-process classifier.
    Text: keyword, sentiment, PII and formatting sub-checks.
    Images: URL validation, optional label model, HEAD accessibility check.
    Confidence is the minimum over every sub-check that raised a flag.
    """

    SPAM_KEYWORDS = ['spam', 'scam', 'fake', 'fraud', 'click here', 'buy now', 'limited time']
    INAPPROPRIATE_KEYWORDS = ['hate', 'offensive', 'discriminatory']

    SPAM_KEYWORD_CONFIDENCE = 0.6
    INAPPROPRIATE_KEYWORD_CONFIDENCE = 0.5
    NEGATIVE_SENTIMENT_THRESHOLD = 0.8
    NEGATIVE_SENTIMENT_CONFIDENCE = 0.7
    PII_CONFIDENCE = 0.8
    CAPS_CONFIDENCE = 0.7
    REPEATED_CHARS_CONFIDENCE = 0.6

    LABEL_FLAG_THRESHOLD = 80
    LABEL_POTENTIAL_THRESHOLD = 60

    REPEATED_CHARS_PATTERN = re.compile(r'(.)\1{4,}')

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        label_detector: Optional[ImageLabelDetector] = None,
        sentiment_analyzer: Optional[SentimentAnalyzer] = None,
        pii_detector: Optional[PIIDetector] = None,
        image_check_timeout: float = 5.0,
    ):
        self.http_client = http_client
        self.label_detector = label_detector
        self.sentiment_analyzer = sentiment_analyzer or SentimentAnalyzer()
        self.pii_detector = pii_detector or PIIDetector()
        self.image_check_timeout = image_check_timeout

    async def classify(self, request: ClassificationRequest) -> AIAssessment:
        try:
            flags: List[str] = []
            confidence = 1.0
            approved = True
            details: Dict[str, Any] = {}

            if request.text:
                text_analysis = self._analyze_text(request.text)
                details['text_analysis'] = text_analysis
                flags.extend(text_analysis['flags'])
                if text_analysis['flags']:
                    approved = False
                    confidence = min(confidence, text_analysis['confidence'])

            if request.images:
                image_analysis = await self._analyze_images(request.images)
                details['image_analysis'] = image_analysis
                for analysis in image_analysis:
                    flags.extend(analysis['flags'])
                    if analysis['flags']:
                        approved = False
                        confidence = min(confidence, analysis['confidence'])

            return AIAssessment(
                approved=approved,
                confidence=confidence,
                flags=flags,
                requires_human_review=not approved and confidence < HUMAN_REVIEW_CONFIDENCE_THRESHOLD,
                details=details,
            )
        except Exception as e:
            logger.error(f"Content classification error: {e}")
            return AIAssessment(
                approved=False,
                confidence=0.0,
                flags=['classification-error'],
                requires_human_review=True,
            )

    def _analyze_text(self, text: str) -> Dict[str, Any]:
        flags: List[str] = []
        confidence = 1.0
        details: Dict[str, Any] = {}

        try:
            text_lower = text.lower()

            for keyword in self.SPAM_KEYWORDS:
                if keyword in text_lower:
                    flags.append(f"spam-keyword-{keyword.replace(' ', '-')}")
                    confidence = min(confidence, self.SPAM_KEYWORD_CONFIDENCE)

            for keyword in self.INAPPROPRIATE_KEYWORDS:
                if keyword in text_lower:
                    flags.append(f"inappropriate-keyword-{keyword}")
                    confidence = min(confidence, self.INAPPROPRIATE_KEYWORD_CONFIDENCE)

            try:
                sentiment, negative = self.sentiment_analyzer.analyze(text)
                details['sentiment'] = {'label': sentiment, 'negative': negative}
                if sentiment == "NEGATIVE" and negative > self.NEGATIVE_SENTIMENT_THRESHOLD:
                    flags.append('high-negative-sentiment')
                    confidence = min(confidence, self.NEGATIVE_SENTIMENT_CONFIDENCE)
            except Exception as e:
                logger.warning(f"Sentiment analysis failed: {e}")

            try:
                entities = self.pii_detector.detect(text)
                details['pii'] = entities
                for entity in entities:
                    flags.append(f"pii-detected-{entity.lower()}")
                    confidence = min(confidence, self.PII_CONFIDENCE)
            except Exception as e:
                logger.warning(f"PII detection failed: {e}")

            caps_ratio = sum(1 for c in text if 'A' <= c <= 'Z') / len(text)
            if caps_ratio > 0.5 and len(text) > 20:
                flags.append('excessive-capitalization')
                confidence = min(confidence, self.CAPS_CONFIDENCE)

            if self.REPEATED_CHARS_PATTERN.search(text):
                flags.append('repeated-characters')
                confidence = min(confidence, self.REPEATED_CHARS_CONFIDENCE)

        except Exception as e:
            logger.error(f"Text analysis error: {e}")
            flags.append('text-analysis-error')
            confidence = 0.0

        return {'flags': flags, 'confidence': confidence, 'details': details}

    async def _analyze_images(self, image_urls: List[str]) -> List[Dict[str, Any]]:
        if self.http_client is not None:
            return [await self._analyze_image(self.http_client, url) for url in image_urls]

        async with httpx.AsyncClient(timeout=self.image_check_timeout, follow_redirects=True) as client:
            return [await self._analyze_image(client, url) for url in image_urls]

    async def _analyze_image(self, client: httpx.AsyncClient, url: str) -> Dict[str, Any]:
        """Assess one image; problems become flags, never exceptions."""
        flags: List[str] = []
        confidence = 1.0
        details: Dict[str, Any] = {}

        try:
            parsed = urlparse(url or '')
            if not url or not url.strip() or parsed.scheme not in ('http', 'https') or not parsed.netloc:
                return {'url': url, 'flags': ['invalid-image-url'], 'confidence': 0.0, 'details': details}

            if self.label_detector is not None:
                try:
                    labels = await self.label_detector.detect_labels(url)
                    details['labels'] = [{'name': l.name, 'confidence': l.confidence} for l in labels]
                    for label in labels:
                        name = re.sub(r'\s+', '-', label.name.strip().lower())
                        if label.confidence > self.LABEL_FLAG_THRESHOLD:
                            flags.append(f"inappropriate-content-{name}")
                            confidence = min(confidence, 0.3)
                        elif label.confidence > self.LABEL_POTENTIAL_THRESHOLD:
                            flags.append(f"potential-inappropriate-content-{name}")
                            confidence = min(confidence, 0.6)
                except Exception as e:
                    logger.warning(f"Image moderation failed for {url}: {e}")
                    flags.append('image-moderation-error')
                    confidence = min(confidence, 0.7)

            try:
                response = await client.head(url)
                details['status_code'] = response.status_code
                if not response.is_success:
                    flags.append('image-not-accessible')
                    confidence = min(confidence, 0.5)
                else:
                    content_type = response.headers.get('content-type', '')
                    if not content_type.startswith('image/'):
                        flags.append('invalid-image-type')
                        confidence = min(confidence, 0.4)
            except httpx.HTTPError as e:
                logger.warning(f"Image accessibility check failed for {url}: {e}")
                flags.append('image-accessibility-error')
                confidence = min(confidence, 0.6)

        except Exception as e:
            logger.error(f"Image analysis error for {url}: {e}")
            flags.append('image-analysis-error')
            confidence = 0.5

        return {'url': url, 'flags': flags, 'confidence': confidence, 'details': details}


class RemoteContentClassifier(ContentClassifier):
    """
    Classifier hosted behind an HTTP endpoint.
    POSTs {text, images} and expects
    {approved, confidence, flags, requiresHumanReview, details?}.
    """

    def __init__(self, endpoint_url: str, http_client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self.endpoint_url = endpoint_url
        self.http_client = http_client
        self.timeout = timeout

    async def classify(self, request: ClassificationRequest) -> AIAssessment:
        payload = request.model_dump(exclude_none=True)
        try:
            if self.http_client is not None:
                response = await self.http_client.post(self.endpoint_url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.endpoint_url, json=payload)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ClassifierError(f"Classifier request failed: {e}", cause=e) from e

        return self._parse_response(body)

    @staticmethod
    def _parse_response(body: Dict[str, Any]) -> AIAssessment:
        try:
            return AIAssessment(
                approved=bool(body['approved']),
                confidence=float(body['confidence']),
                flags=list(body.get('flags') or []),
                requires_human_review=bool(
                    body.get('requiresHumanReview', body.get('requires_human_review', False))
                ),
                details=body.get('details') or body.get('moderationDetails'),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ClassifierError(f"Malformed classifier response: {e}", cause=e) from e


def fallback_assessment(confidence: float, reason: str) -> AIAssessment:
    """Conservative result used whenever the classifier cannot answer."""
    return AIAssessment(
        approved=False,
        confidence=confidence,
        flags=['ai-moderation-error'],
        requires_human_review=True,
        details={'error': reason},
    )


async def classify_with_fallback(
    classifier: ContentClassifier,
    request: ClassificationRequest,
    timeout_seconds: float,
    fallback_confidence: float = 0.5,
) -> AIAssessment:
    """
    Run the classifier with a bounded timeout.
    Timeouts and errors degrade immediately, without retries.
    """
    start_time = time.time()
    try:
        result = await asyncio.wait_for(classifier.classify(request), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.warning(f"AI classifier timed out after {timeout_seconds}s")
        metrics.record_classifier_failure("timeout")
        return fallback_assessment(fallback_confidence, "timeout")
    except Exception as e:
        logger.warning(f"AI classifier failed: {e}")
        metrics.record_classifier_failure("error")
        return fallback_assessment(fallback_confidence, str(e))

    metrics.record_classifier_call(time.time() - start_time)
    return result
