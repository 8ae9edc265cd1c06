"""
Signal Extractor - heuristic spam scoring for submissions.
Turns a SubmissionContext into a SpamAssessment using honeypot fields,
timing, text, contact fields and client metadata. No I/O.
"""

import logging
import re
from typing import Callable, List, Optional, Tuple
from urllib.parse import urlparse

from submission_moderation.config import ModerationConfig
from submission_moderation.models.submission import SubmissionContext, SpamAssessment

logger = logging.getLogger(__name__)

SignalResult = Tuple[float, List[str]]


class SignalExtractor:
    """
    Deterministic spam signal extraction.
    Each analyzer returns a sub-score clamped to 1.0 plus its indicators;
    the final score is the clamped sum.
    """

    URL_PATTERN = re.compile(r'https?://[^\s]+')
    REPEATED_CHARS_PATTERN = re.compile(r'(.)\1{4,}')
    PUNCTUATION_RUN_PATTERN = re.compile(r'[!?]{2,}')
    UPPERCASE_PATTERN = re.compile(r'[A-Z]')
    RANDOM_LOCAL_PART_PATTERN = re.compile(r'^[a-z0-9]{8,}$')
    MANY_DIGITS_PATTERN = re.compile(r'\d{4,}')
    SAME_DIGIT_PATTERN = re.compile(r'^(\d)\1+$')
    SEQUENTIAL_DIGITS_PATTERN = re.compile(r'123456|654321|012345')
    NON_DIGIT_PATTERN = re.compile(r'\D')

    def __init__(self, config: Optional[ModerationConfig] = None):
        self.config = config or ModerationConfig()
        self.weights = self.config.weights

    def assess(self, context: SubmissionContext) -> SpamAssessment:
        """Score one submission. Identical input always yields identical output."""
        score = 0.0
        indicators: List[str] = []

        honeypot_fields = self._triggered_honeypots(context)
        for field_name in honeypot_fields:
            indicators.append(f"honeypot-{field_name}")
            score += self.weights.honeypot

        if context.submission_time_ms < self.config.min_submission_time_ms:
            indicators.append("submission-too-fast")
            score += self.weights.too_fast

        checks: List[Tuple[str, Callable[[str], SignalResult], Optional[str]]] = [
            ("text", self._check_text, context.text or None),
            ("email", self._check_email, context.email or None),
            ("phone", self._check_phone, context.phone or None),
            ("website", self._check_website, context.website or None),
            ("user-agent", self._check_user_agent, context.user_agent),
        ]
        for name, check, value in checks:
            if value is None:
                continue
            sub_score, sub_indicators = self._run_check(name, check, value)
            score += sub_score
            indicators.extend(sub_indicators)

        score = round(min(score, 1.0), 4)

        return SpamAssessment(
            score=score,
            indicators=indicators,
            is_spam=score > self.config.spam_threshold,
            honeypot_fields=honeypot_fields,
        )

    def _run_check(self, name: str, check: Callable[[str], SignalResult], value: str) -> SignalResult:
        """Run one analyzer; a failing analyzer contributes a cautious indicator."""
        try:
            sub_score, sub_indicators = check(value)
        except Exception as e:
            logger.warning(f"Spam analyzer {name} failed: {e}")
            return (self.weights.analysis_error, [f"{name}-analysis-error"])
        return (min(sub_score, 1.0), sub_indicators)

    @staticmethod
    def _triggered_honeypots(context: SubmissionContext) -> List[str]:
        triggered = []
        for field_name in sorted(context.honeypot_fields):
            value = context.honeypot_fields[field_name]
            if value and str(value).strip() != '':
                triggered.append(field_name)
        return triggered

    def _check_text(self, text: str) -> SignalResult:
        """Keyword, formatting and length signals."""
        indicators: List[str] = []
        score = 0.0
        text_lower = text.lower()

        for keyword in self.config.spam_keywords:
            if keyword in text_lower:
                indicators.append(f"spam-keyword-{self._slug(keyword)}")
                score += self.weights.spam_keyword

        for keyword in self.config.inappropriate_keywords:
            if keyword in text_lower:
                indicators.append(f"inappropriate-keyword-{self._slug(keyword)}")
                score += self.weights.inappropriate_keyword

        caps_ratio = len(self.UPPERCASE_PATTERN.findall(text)) / len(text)
        if caps_ratio > self.config.caps_ratio and len(text) > self.config.caps_min_text_length:
            indicators.append("excessive-caps")
            score += self.weights.excessive_caps

        if len(self.PUNCTUATION_RUN_PATTERN.findall(text)) > 2:
            indicators.append("excessive-punctuation")
            score += self.weights.excessive_punctuation

        if self.REPEATED_CHARS_PATTERN.search(text):
            indicators.append("repeated-characters")
            score += self.weights.repeated_characters

        if len(self.URL_PATTERN.findall(text)) > self.config.max_urls:
            indicators.append("multiple-urls")
            score += self.weights.multiple_urls

        if len(text) < self.config.min_text_length:
            indicators.append("text-too-short")
            score += self.weights.text_too_short
        elif len(text) > self.config.max_text_length:
            indicators.append("text-too-long")
            score += self.weights.text_too_long

        return (score, indicators)

    def _check_email(self, email: str) -> SignalResult:
        """Disposable domains and machine-generated local parts."""
        indicators: List[str] = []
        score = 0.0

        local_part, _, domain = email.partition('@')
        domain = domain.lower()
        if domain:
            for disposable in self.config.disposable_email_domains:
                if disposable in domain:
                    indicators.append("suspicious-email-domain")
                    score += self.weights.suspicious_email_domain
                    break

        if local_part and self.RANDOM_LOCAL_PART_PATTERN.match(local_part.lower()):
            indicators.append("random-email-pattern")
            score += self.weights.random_email_pattern

        if self.MANY_DIGITS_PATTERN.search(local_part):
            indicators.append("email-many-numbers")
            score += self.weights.email_many_numbers

        return (score, indicators)

    def _check_phone(self, phone: str) -> SignalResult:
        """Repeated, sequential or impossible-length numbers."""
        indicators: List[str] = []
        score = 0.0
        digits = self.NON_DIGIT_PATTERN.sub('', phone)

        if self.SAME_DIGIT_PATTERN.match(digits):
            indicators.append("phone-repeated-digits")
            score += self.weights.phone_repeated_digits

        if len(digits) < 7 or len(digits) > 15:
            indicators.append("phone-invalid-length")
            score += self.weights.phone_invalid_length

        if self.SEQUENTIAL_DIGITS_PATTERN.search(digits):
            indicators.append("phone-sequential-digits")
            score += self.weights.phone_sequential_digits

        return (score, indicators)

    def _check_website(self, url: str) -> SignalResult:
        """Suspicious TLDs, shorteners and spam keywords in the website URL."""
        try:
            parsed = urlparse(url)
            hostname = parsed.hostname
        except ValueError:
            hostname = None
        if not hostname or parsed.scheme not in ('http', 'https'):
            return (self.weights.invalid_url, ["invalid-url"])

        indicators: List[str] = []
        score = 0.0

        if any(hostname.endswith(tld) for tld in self.config.suspicious_tlds):
            indicators.append("suspicious-tld")
            score += self.weights.suspicious_tld

        if len(url) > self.config.max_url_length:
            indicators.append("url-too-long")
            score += self.weights.url_too_long

        if any(shortener in hostname for shortener in self.config.url_shorteners):
            indicators.append("url-shortener")
            score += self.weights.url_shortener

        url_lower = url.lower()
        if any(keyword in url_lower for keyword in self.config.suspicious_url_keywords):
            indicators.append("suspicious-url-keyword")
            score += self.weights.suspicious_url_keyword

        return (score, indicators)

    def _check_user_agent(self, user_agent: str) -> SignalResult:
        """Missing, scripted or outdated client signatures."""
        indicators: List[str] = []
        score = 0.0

        if len(user_agent) < self.config.user_agent_min_length:
            indicators.append("suspicious-user-agent")
            score += self.weights.suspicious_user_agent

        ua_lower = user_agent.lower()
        if any(token in ua_lower for token in self.config.bot_user_agent_tokens):
            indicators.append("bot-user-agent")
            score += self.weights.bot_user_agent

        if any(signature in user_agent for signature in self.config.outdated_browser_signatures):
            indicators.append("outdated-browser")
            score += self.weights.outdated_browser

        return (score, indicators)

    @staticmethod
    def _slug(keyword: str) -> str:
        return re.sub(r'\s+', '-', keyword.strip())
