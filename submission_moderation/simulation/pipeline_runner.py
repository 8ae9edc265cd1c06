"""
Pipeline Runner - Drives generated submissions through the moderation pipeline
against in-memory stores and reports outcome and queue metrics
"""

import asyncio
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from submission_moderation.bootstrap import ModerationServices, build_services
from submission_moderation.config import Settings
from submission_moderation.models.enums import ContentType, ModerationDecision, QueueStatus
from submission_moderation.services.moderation_service import ModerationPipelineResult
from submission_moderation.simulation.content_generator import SubmissionGenerator


@dataclass
class PipelineConfig:
    """Configuration for the simulation pipeline"""
    total_submissions: int = 200
    concurrency: int = 20
    burst_size: int = 10
    seed: Optional[int] = 7

    # Simulated moderator resolves this many pending items at the end
    moderator_batch: int = 10

    # Output settings
    verbose: bool = True
    save_results: bool = False
    output_file: str = "simulation_results.json"


class MetricsCollector:
    """Collects and aggregates pipeline metrics"""

    def __init__(self):
        self.start_time = datetime.utcnow()
        self.outcomes: Dict[str, int] = {}
        self.priorities: Dict[str, int] = {}
        self.scenario_matches = 0
        self.total = 0
        self.total_latency_ms = 0

    def record(self, message: Dict[str, Any], result: ModerationPipelineResult):
        self.total += 1
        outcome = result.outcome.value
        self.outcomes[outcome] = self.outcomes.get(outcome, 0) + 1
        if result.item is not None:
            name = result.item.priority.name
            self.priorities[name] = self.priorities.get(name, 0) + 1
        if outcome in message["_sim_metadata"]["expected_outcomes"]:
            self.scenario_matches += 1
        self.total_latency_ms += result.total_processing_time_ms

    def get_summary(self) -> Dict[str, Any]:
        elapsed = (datetime.utcnow() - self.start_time).total_seconds()
        return {
            "total": self.total,
            "elapsed_seconds": elapsed,
            "throughput_per_second": self.total / max(elapsed, 1e-6),
            "avg_latency_ms": self.total_latency_ms / max(1, self.total),
            "outcomes": self.outcomes,
            "priorities": self.priorities,
            "expected_outcome_rate": self.scenario_matches / max(1, self.total),
        }


class PipelineRunner:
    """Runs the complete simulation pipeline"""

    def __init__(self, config: Optional[PipelineConfig] = None, services: Optional[ModerationServices] = None):
        self.config = config or PipelineConfig()
        self.services = services or build_services(Settings(store_backend="memory"))
        self.generator = SubmissionGenerator(seed=self.config.seed)
        self.metrics = MetricsCollector()
        self._anchor_listing_id: Optional[str] = None

    def _register_content(self, message: Dict[str, Any]) -> None:
        """Create the listing or review a submission refers to."""
        listings = self.services.listing_service
        context = message["context"]
        if message["content_type"] == ContentType.LISTING.value:
            listing = listings.create_listing({
                "name": f"Simulated business {message['content_id'][:6]}",
                "description": context["text"],
                "street": "1 Main St",
                "city": "Portland",
                "state": "OR",
                "zip_code": "97201",
                "country": "US",
                "latitude": 45.52,
                "longitude": -122.68,
                "categories": ["Food"],
            }, owner_id=message["submitter_id"])
            message["content_id"] = listing["id"]
        else:
            if self._anchor_listing_id is None:
                anchor = listings.create_listing({
                    "name": "Anchor listing", "description": "Reviewed by simulated users",
                    "street": "2 Main St", "city": "Portland", "state": "OR",
                    "zip_code": "97201", "country": "US", "latitude": 45.5, "longitude": -122.6,
                })
                self._anchor_listing_id = anchor["id"]
            review = listings.create_review({
                "listing_id": self._anchor_listing_id,
                "user_id": message["submitter_id"],
                "rating": 4,
                "comment": context["text"],
            })
            message["content_id"] = review["id"]

    async def _process(self, message: Dict[str, Any], semaphore: asyncio.Semaphore):
        async with semaphore:
            self._register_content(message)
            payload = {k: v for k, v in message.items() if not k.startswith("_")}
            result = await self.services.moderation_service.process(payload)
            self.metrics.record(message, result)

    async def run(self) -> Dict[str, Any]:
        semaphore = asyncio.Semaphore(self.config.concurrency)
        messages = self.generator.generate_batch(self.config.total_submissions)
        messages += self.generator.generate_burst(self.config.burst_size)

        await asyncio.gather(*(self._process(message, semaphore) for message in messages))

        # A moderator approves a batch of the oldest urgent work
        pending = self.services.queue.list_items(status=QueueStatus.PENDING)
        batch = [item.id for item in pending[:self.config.moderator_batch]]
        decisions = await self.services.queue.submit_bulk_decision(
            batch, ModerationDecision.APPROVE, "sim-moderator", notes="Simulated review"
        )

        summary = self.metrics.get_summary()
        summary["moderator_decisions"] = sum(1 for d in decisions if d.success)
        summary["queue"] = self.services.queue.stats().model_dump()

        if self.config.verbose:
            print("=" * 60)
            print(json.dumps(summary, indent=2))
            print("=" * 60)
        if self.config.save_results:
            with open(self.config.output_file, "w") as f:
                json.dump(summary, f, indent=2)
        return summary


def main():
    asyncio.run(PipelineRunner().run())


if __name__ == "__main__":
    main()
