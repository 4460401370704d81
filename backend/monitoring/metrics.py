"""
Prometheus metrics for the chart sharing service
"""

import time
from functools import wraps
from typing import Callable
from prometheus_client import Counter, Histogram, CollectorRegistry
from prometheus_client.exposition import generate_latest

# Create a custom registry
metrics_registry = CollectorRegistry()

# Request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
    registry=metrics_registry
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
    buckets=(.005, .01, .025, .05, .075, .1, .25, .5, .75, 1.0, 2.5, 5.0),
    registry=metrics_registry
)

# Permission metrics
permissions_created_total = Counter(
    "permissions_created_total",
    "Total sharing permissions issued",
    registry=metrics_registry
)

permission_verifications_total = Counter(
    "permission_verifications_total",
    "Permission verification attempts by outcome",
    ["outcome"],
    registry=metrics_registry
)

permission_update_conflicts_total = Counter(
    "permission_update_conflicts_total",
    "Conditional permission updates that lost a race and were retried",
    registry=metrics_registry
)

# Rate limiting metrics
rate_limit_rejections_total = Counter(
    "rate_limit_rejections_total",
    "Requests rejected by the rate limiter",
    ["scope"],
    registry=metrics_registry
)

# Error metrics
errors_total = Counter(
    "errors_total",
    "Total errors",
    ["error_type", "endpoint"],
    registry=metrics_registry
)


def track_request(method: str, endpoint: str):
    """Decorator to track HTTP requests"""
    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            start_time = time.time()
            status = "success"
            try:
                result = await func(*args, **kwargs)
                return result
            except Exception as e:
                status = "error"
                errors_total.labels(
                    error_type=type(e).__name__,
                    endpoint=endpoint
                ).inc()
                raise
            finally:
                duration = time.time() - start_time
                http_requests_total.labels(
                    method=method,
                    endpoint=endpoint,
                    status=status
                ).inc()
                http_request_duration_seconds.labels(
                    method=method,
                    endpoint=endpoint
                ).observe(duration)
        return wrapper
    return decorator


def record_verification(outcome: str) -> None:
    """Count one verification attempt"""
    permission_verifications_total.labels(outcome=outcome).inc()


def get_metrics() -> bytes:
    """Generate Prometheus metrics exposition format"""
    return generate_latest(metrics_registry)
