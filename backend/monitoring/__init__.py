"""
Monitoring module for application metrics
"""

from backend.monitoring.metrics import metrics_registry, track_request, record_verification, get_metrics

__all__ = [
    "metrics_registry",
    "track_request",
    "record_verification",
    "get_metrics",
]
