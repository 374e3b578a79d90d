"""Prometheus metrics for batch normalization and scoring.

Based on Prometheus best practices:
https://prometheus.io/docs/practices/naming/
"""

from prometheus_client import Counter, Histogram

invoice_records_total = Counter(
    "invoice_records_total",
    "Total invoice records processed",
    ["status"],  # normalized, failed
)

invoice_synthetic_fields_total = Counter(
    "invoice_synthetic_fields_total",
    "Total fields completed with placeholder values",
    ["field"],
)

invoice_normalization_failures_total = Counter(
    "invoice_normalization_failures_total",
    "Total records rejected during normalization",
    ["error_type"],
)

invoice_quality_score = Histogram(
    "invoice_quality_score",
    "Distribution of overall completeness scores",
    buckets=(10, 20, 30, 40, 50, 60, 70, 80, 90, 100),
)
