"""
Simulation Package for the Submission Moderation Pipeline

- SubmissionGenerator: generates listing and review submissions, benign and spam
- PipelineRunner: drives generated traffic through the pipeline in memory

Usage:
    from submission_moderation.simulation import SubmissionGenerator, PipelineRunner

    generator = SubmissionGenerator(seed=1)
    message = generator.generate_submission()

    runner = PipelineRunner()
    asyncio.run(runner.run())
"""

from submission_moderation.simulation.content_generator import (
    SubmissionGenerator, SubmissionScenario, SCENARIOS
)
from submission_moderation.simulation.pipeline_runner import PipelineRunner, PipelineConfig, MetricsCollector

__all__ = [
    'SubmissionGenerator',
    'SubmissionScenario',
    'SCENARIOS',
    'PipelineRunner',
    'PipelineConfig',
    'MetricsCollector',
]
