"""
Submission Generator - Simulates realistic listing and review submissions
Generates benign traffic, spam bots and borderline content for pipeline testing
"""

import random
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, List, Optional
import json

from submission_moderation.models.enums import ContentType


@dataclass
class SubmissionScenario:
    """Defines a submission generation scenario"""
    name: str
    content_type: ContentType
    text_templates: List[str]
    submission_time_ms: tuple  # (low, high)
    honeypot_probability: float = 0.0
    email_domains: List[str] = field(default_factory=lambda: ['gmail.com', 'outlook.com', 'example.org'])
    websites: List[Optional[str]] = field(default_factory=lambda: [None])
    phones: List[Optional[str]] = field(default_factory=lambda: [None])
    user_agents: List[str] = field(default_factory=list)
    images: List[str] = field(default_factory=list)
    expected_outcomes: List[str] = field(default_factory=list)


BROWSER_USER_AGENTS = [
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 14_2) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15',
    'Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0',
]

BOT_USER_AGENTS = ['python-requests/2.31', 'curl/8.4.0', 'Go-http-client/1.1', 'Mozilla/4.0 (compatible; MSIE 6.0)']


# Scenario definitions
SCENARIOS = [
    SubmissionScenario(
        name="benign_listing",
        content_type=ContentType.LISTING,
        text_templates=[
            "Family-owned {business} serving {city} since {year}. Stop by for {offer}.",
            "Friendly {business} in downtown {city}. We specialise in {offer}.",
            "Local {business} with a cozy atmosphere and great {offer}.",
        ],
        submission_time_ms=(15000, 120000),
        websites=[None, 'https://www.example.com', 'https://shop.example.org/about'],
        phones=[None, '(555) 201-4387', '+1 415 555 0132'],
        user_agents=BROWSER_USER_AGENTS,
        expected_outcomes=['auto_approved'],
    ),
    SubmissionScenario(
        name="benign_review",
        content_type=ContentType.REVIEW,
        text_templates=[
            "Great {offer} and friendly staff. Will come back next time I'm in {city}.",
            "Solid {business}, a bit busy on weekends but worth the wait.",
            "Really enjoyed the {offer}. Parking was easy too.",
        ],
        submission_time_ms=(8000, 60000),
        user_agents=BROWSER_USER_AGENTS,
        expected_outcomes=['auto_approved'],
    ),
    SubmissionScenario(
        name="spam_bot",
        content_type=ContentType.LISTING,
        text_templates=[
            "BUY NOW!!! GUARANTEED MONEY!!! Click here {url} {url}",
            "FREE MONEY - limited time - act now at {url}!!!",
            "Make money fast from home, investment opportunity, claim now {url}",
        ],
        submission_time_ms=(100, 1500),
        honeypot_probability=0.8,
        email_domains=['tempmail.com', 'mailinator.com', 'guerrillamail.com'],
        websites=['http://free-money.tk', 'https://bit.ly/x9z', 'http://casino-winner.ml/claim'],
        phones=['1111111111', '1234567890'],
        user_agents=BOT_USER_AGENTS,
        expected_outcomes=['rejected'],
    ),
    SubmissionScenario(
        name="borderline_review",
        content_type=ContentType.REVIEW,
        text_templates=[
            "WORST SERVICE EVER, TOTALLY UNACCEPTABLE!!! Never again!!",
            "Pretty offensive attitude from the staff, sooooo rude.",
            "Call me at {phone} for a better deal on {offer}.",
        ],
        submission_time_ms=(2000, 20000),
        user_agents=BROWSER_USER_AGENTS,
        expected_outcomes=['queued', 'auto_approved'],
    ),
]

# Template fillers
TEMPLATE_FILLERS = {
    "business": ["bakery", "coffee shop", "bike repair shop", "bookstore", "taqueria", "hardware store"],
    "city": ["Portland", "Austin", "Denver", "Raleigh", "Madison"],
    "year": ["1987", "2004", "2012", "2019"],
    "offer": ["sourdough", "espresso drinks", "tune-ups", "used books", "tacos al pastor", "friendly advice"],
    "url": ["http://bit.ly/scam123", "http://free-money.tk", "http://winner-casino.ml"],
    "phone": ["555-201-4387", "(555) 867-5309"],
}

HONEYPOT_FIELDS = ['email_confirm', 'website_url', 'company_name', 'phone_number', 'message_body']


class SubmissionGenerator:
    """Generates simulated submission-stream messages"""

    def __init__(self, seed: Optional[int] = None):
        self.random = random.Random(seed)
        self.scenario_weights = self._calculate_scenario_weights()

    def _calculate_scenario_weights(self) -> List[float]:
        """Calculate weighted probabilities for scenario selection"""
        # Realistic distribution of submission traffic
        weights = {
            "benign_listing": 0.35,
            "benign_review": 0.40,
            "spam_bot": 0.15,
            "borderline_review": 0.10,
        }
        return [weights.get(s.name, 0.1) for s in SCENARIOS]

    def _fill_template(self, template: str) -> str:
        """Fill template placeholders with random values"""
        result = template
        for key, values in TEMPLATE_FILLERS.items():
            placeholder = "{" + key + "}"
            while placeholder in result:
                result = result.replace(placeholder, self.random.choice(values), 1)
        return result

    def _random_ip(self) -> str:
        return ".".join(str(self.random.randint(1, 254)) for _ in range(4))

    def generate_submission(self, content_id: Optional[str] = None,
                            scenario: Optional[SubmissionScenario] = None) -> Dict[str, Any]:
        """Generate a single submission-stream message"""
        scenario = scenario or self.random.choices(SCENARIOS, weights=self.scenario_weights)[0]
        rnd = self.random

        honeypots = {}
        if rnd.random() < scenario.honeypot_probability:
            honeypots[rnd.choice(HONEYPOT_FIELDS)] = "filled-by-bot"

        ip_address = self._random_ip()
        local_part = f"{rnd.choice(['sam', 'alex', 'jordan', 'casey'])}.{rnd.choice(['lee', 'kim', 'diaz', 'ng'])}"
        message = {
            "content_type": scenario.content_type.value,
            "content_id": content_id or uuid.uuid4().hex,
            "submitter_id": f"user_{uuid.uuid4().hex[:8]}",
            "context": {
                "identifier": ip_address,
                "text": self._fill_template(rnd.choice(scenario.text_templates)),
                "email": f"{local_part}@{rnd.choice(scenario.email_domains)}",
                "phone": rnd.choice(scenario.phones),
                "website": rnd.choice(scenario.websites),
                "honeypot_fields": honeypots,
                "submission_time_ms": rnd.randint(*scenario.submission_time_ms),
                "user_agent": rnd.choice(scenario.user_agents) if scenario.user_agents else None,
                "ip_address": ip_address,
            },
            "images": list(scenario.images),
        }
        message["_sim_metadata"] = {
            "scenario": scenario.name,
            "expected_outcomes": scenario.expected_outcomes,
        }
        return message

    def generate_batch(self, size: int) -> List[Dict[str, Any]]:
        """Generate a batch of submissions"""
        return [self.generate_submission() for _ in range(size)]

    def generate_stream(self) -> Generator[Dict[str, Any], None, None]:
        """Generate an endless stream of submissions"""
        while True:
            yield self.generate_submission()

    def generate_burst(self, size: int, identifier: Optional[str] = None) -> List[Dict[str, Any]]:
        """Generate a burst of spam from a single source (simulates attack)"""
        scenario = next(s for s in SCENARIOS if s.name == "spam_bot")
        identifier = identifier or self._random_ip()

        burst = []
        for _ in range(size):
            message = self.generate_submission(scenario=scenario)
            message["context"]["identifier"] = identifier
            message["context"]["ip_address"] = identifier
            message["_sim_metadata"]["scenario"] = "burst_spam"
            message["_sim_metadata"]["expected_outcomes"] = ["rejected", "rate_limited"]
            burst.append(message)
        return burst


def main():
    """Demo the submission generator"""
    generator = SubmissionGenerator(seed=42)

    print("=" * 60)
    print("Submission Generator Demo")
    print("=" * 60)

    print("\n--- Sample Submissions (5 items) ---\n")
    for i, message in enumerate(generator.generate_batch(5), 1):
        meta = message["_sim_metadata"]
        print(f"{i}. [{message['content_type']}] {message['context']['text'][:80]}")
        print(f"   Scenario: {meta['scenario']} | Expected: {meta['expected_outcomes']}")

    print("\n--- Scenario Mix (1000 items) ---")
    counts: Dict[str, int] = {}
    for message in generator.generate_batch(1000):
        name = message["_sim_metadata"]["scenario"]
        counts[name] = counts.get(name, 0) + 1
    print(json.dumps(counts, indent=2))


if __name__ == "__main__":
    main()
