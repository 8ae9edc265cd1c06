"""
Prometheus metrics exporter
"""
import os
import logging
from prometheus_client import Counter, Histogram, Gauge, start_http_server
from functools import wraps
import time

logger = logging.getLogger(__name__)

# Counters
submissions_processed = Counter(
    'moderation_submissions_processed_total', 'Total submissions processed', ['outcome', 'content_type']
)
spam_indicators = Counter('moderation_spam_indicators_total', 'Spam indicators raised', ['indicator'])
classifier_failures = Counter('moderation_classifier_failures_total', 'AI classifier failures', ['reason'])
moderator_decisions = Counter(
    'moderation_moderator_decisions_total', 'Moderator decisions applied', ['decision', 'result']
)
rate_limit_denials = Counter('moderation_rate_limit_denials_total', 'Rate limit denials', ['action'])

# Histograms (for latency)
processing_latency = Histogram('moderation_processing_duration_seconds', 'Processing duration', ['stage'])
classifier_latency = Histogram('moderation_classifier_duration_seconds', 'AI classifier duration')

# Gauges (for current state)
queue_depth = Gauge('moderation_queue_depth', 'Current pending queue depth', ['priority'])


class MetricsExporter:
    """Prometheus metrics exporter"""

    def __init__(self, port: int = 8000):
        self.port = port
        self.server_started = False

    def start(self):
        """Start Prometheus HTTP server"""
        if not self.server_started:
            start_http_server(self.port)
            self.server_started = True
            logger.info(f"Prometheus metrics server started on port {self.port}")

    @staticmethod
    def track_processing(stage: str):
        """Decorator to track processing time of a coroutine"""
        def decorator(func):
            @wraps(func)
            async def wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    result = await func(*args, **kwargs)
                    processing_latency.labels(stage=stage).observe(time.time() - start_time)
                    return result
                except Exception:
                    processing_latency.labels(stage=f"{stage}_error").observe(time.time() - start_time)
                    raise
            return wrapper
        return decorator

    @staticmethod
    def record_submission(outcome: str, content_type: str):
        """Record pipeline outcome"""
        submissions_processed.labels(outcome=outcome, content_type=content_type).inc()

    @staticmethod
    def record_spam_indicator(indicator: str):
        """Record a spam indicator, collapsing per-field/per-keyword suffixes"""
        for prefix in ('honeypot-', 'spam-keyword-', 'inappropriate-keyword-'):
            if indicator.startswith(prefix):
                indicator = prefix.rstrip('-')
                break
        spam_indicators.labels(indicator=indicator).inc()

    @staticmethod
    def record_classifier_call(duration: float):
        """Record a successful classifier call"""
        classifier_latency.observe(duration)

    @staticmethod
    def record_classifier_failure(reason: str):
        """Record classifier timeout or error"""
        classifier_failures.labels(reason=reason).inc()

    @staticmethod
    def record_decision(decision: str, result: str):
        """Record moderator decision outcome (success, conflict, not_found, error)"""
        moderator_decisions.labels(decision=decision, result=result).inc()

    @staticmethod
    def record_rate_limit_denial(action: str):
        rate_limit_denials.labels(action=action).inc()

    @staticmethod
    def update_queue_depth(priority: str, depth: int):
        """Update queue depth gauge"""
        queue_depth.labels(priority=priority).set(depth)


# Singleton instance
metrics = MetricsExporter(port=int(os.getenv('METRICS_PORT', '8000')))
