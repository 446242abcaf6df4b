"""Monitoring infrastructure for the points engine"""
from vitalpoints.monitoring.sentry_config import init_sentry, capture_exception
from vitalpoints.monitoring.prometheus_metrics import (
    metrics,
    track_award,
)

__all__ = [
    "init_sentry",
    "capture_exception",
    "metrics",
    "track_award",
]
