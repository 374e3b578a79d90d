"""Prometheus metrics for API service.

Exposes key metrics for monitoring:
- Request counts by endpoint and status
- Request duration histograms
- Records per batch request

Record level counters (normalized, failed, synthetic fields) live with the
batch driver in pipeline.batch.metrics and share the default registry.

Based on Prometheus best practices:
https://prometheus.io/docs/practices/naming/
"""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
)

batch_size_records = Histogram(
    "batch_size_records",
    "Number of records per batch request",
    buckets=(1, 5, 10, 50, 100, 500, 1000),
)


def get_metrics() -> tuple[bytes, str]:
    """Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics bytes, content type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST
