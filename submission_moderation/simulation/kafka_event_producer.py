"""Kafka event producer for demo runs.

Publishes generated submissions to the submission stream consumed by
run_pipeline.Pipeline.start().
"""

from __future__ import annotations

import os
import time

from kafka.errors import KafkaError

from submission_moderation.lib.kafka_client import MessageBroker
from submission_moderation.simulation.content_generator import SubmissionGenerator


def run():
    duration = int(os.getenv("SIMULATION_DURATION", "300"))
    rate = float(os.getenv("SUBMISSION_RATE_PER_SEC", "5"))

    broker = MessageBroker()
    generator = SubmissionGenerator()

    print(f"[producer] starting for {duration}s ({rate}/s) against {broker.bootstrap_servers}")

    start = time.time()
    sent = 0
    try:
        while time.time() - start < duration:
            message = generator.generate_submission()
            message.pop("_sim_metadata", None)
            if broker.publish_submission(message):
                sent += 1
            time.sleep(1.0 / max(0.1, rate))
    except KafkaError as e:
        print(f"[producer] ERROR: {e}")
        print("[producer] Please start Kafka before running the producer.")
    finally:
        broker.close()

    print(f"[producer] finished, {sent} submissions sent")


if __name__ == "__main__":
    run()
