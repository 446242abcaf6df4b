"""Prometheus metrics definitions and helpers"""
import logging
import time
from contextlib import contextmanager

from prometheus_client import Counter, Histogram, Gauge

from vitalpoints.config import ENABLE_PROMETHEUS

logger = logging.getLogger(__name__)


class PrometheusMetrics:
    """Container for all Prometheus metrics"""

    def __init__(self):
        if not ENABLE_PROMETHEUS:
            logger.info("Prometheus metrics disabled")
            self._enabled = False
            return

        # HTTP Request Metrics
        self.http_requests_total = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['method', 'endpoint', 'status']
        )

        self.http_request_duration_seconds = Histogram(
            'http_request_duration_seconds',
            'HTTP request latency',
            ['method', 'endpoint'],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0]
        )

        # Award Metrics
        self.points_awards_total = Counter(
            'points_awards_total',
            'Point transactions appended to the ledger',
            ['action_type', 'multiplier']
        )

        self.points_awarded_total = Counter(
            'points_awarded_total',
            'Sum of total_points appended to the ledger',
            ['action_type']
        )

        self.points_idempotent_hits_total = Counter(
            'points_idempotent_hits_total',
            'Award calls answered with an existing transaction',
            ['action_type']
        )

        self.points_award_failures_total = Counter(
            'points_award_failures_total',
            'Award calls that failed',
            ['error_type']
        )

        self.points_contention_retries_total = Counter(
            'points_contention_retries_total',
            'Critical-section retries after lock or serialization contention'
        )

        self.points_award_duration_seconds = Histogram(
            'points_award_duration_seconds',
            'Award call latency including retries',
            buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
        )

        # Reconciliation Metrics
        self.points_reconciliation_drift_total = Counter(
            'points_reconciliation_drift_total',
            'Accounts whose lifetime_points disagreed with the ledger'
        )

        self.points_last_reconciliation_drift = Gauge(
            'points_last_reconciliation_drift',
            'Absolute drift summed over the last reconciliation run'
        )

        self._enabled = True
        logger.info("Prometheus metrics initialized")

    @property
    def enabled(self) -> bool:
        """Check if metrics are enabled"""
        return self._enabled

    def record_award(self, action_type: str, multiplier: int, total_points: int) -> None:
        if not self._enabled:
            return
        self.points_awards_total.labels(action_type=action_type, multiplier=str(multiplier)).inc()
        self.points_awarded_total.labels(action_type=action_type).inc(total_points)

    def record_idempotent_hit(self, action_type: str) -> None:
        if not self._enabled:
            return
        self.points_idempotent_hits_total.labels(action_type=action_type).inc()

    def record_award_failure(self, error_type: str) -> None:
        if not self._enabled:
            return
        self.points_award_failures_total.labels(error_type=error_type).inc()

    def record_contention_retry(self) -> None:
        if not self._enabled:
            return
        self.points_contention_retries_total.inc()

    def record_reconciliation(self, drifted_accounts: int, total_drift: int) -> None:
        if not self._enabled:
            return
        if drifted_accounts:
            self.points_reconciliation_drift_total.inc(drifted_accounts)
        self.points_last_reconciliation_drift.set(total_drift)


# Global metrics instance
metrics = PrometheusMetrics()


@contextmanager
def track_award():
    """Track award latency"""
    if not metrics.enabled:
        yield
        return

    start_time = time.time()
    try:
        yield
    finally:
        metrics.points_award_duration_seconds.observe(time.time() - start_time)
