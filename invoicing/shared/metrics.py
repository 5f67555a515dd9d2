"""Prometheus metrics for the invoice API.

Exposes key metrics for monitoring:
- Request counts by endpoint and status
- Request duration histograms
- Invoice upload and extraction handshake outcomes
- Report generation outcomes

Based on Prometheus best practices:
https://prometheus.io/docs/practices/naming/
"""

from prometheus_client import Counter, Histogram, generate_latest
from prometheus_client.openmetrics.exposition import CONTENT_TYPE_LATEST

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

# Invoice ingestion metrics
invoices_uploaded_total = Counter(
    "invoices_uploaded_total",
    "Total invoices uploaded",
    ["status"],  # dispatched, failed
)

invoice_upload_size_bytes = Histogram(
    "invoice_upload_size_bytes",
    "Invoice upload size in bytes",
    buckets=(1024, 10240, 102400, 1048576, 10485760),  # 1KB to 10MB
)

extraction_dispatch_total = Counter(
    "extraction_dispatch_total",
    "Total dispatches to the extraction workflow",
    ["status"],  # success, rejected, unreachable
)

extraction_dispatch_duration_seconds = Histogram(
    "extraction_dispatch_duration_seconds",
    "Extraction workflow dispatch duration in seconds",
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
)

extraction_callbacks_total = Counter(
    "extraction_callbacks_total",
    "Total callbacks received from the extraction workflow",
    ["outcome"],  # processed, error, rejected, unauthorized
)

invoices_confirmed_total = Counter(
    "invoices_confirmed_total",
    "Total invoices confirmed by reviewers",
)

# Report metrics
reports_generated_total = Counter(
    "reports_generated_total",
    "Total reports generated",
    ["type", "status"],  # status: completed, error
)


def get_metrics() -> tuple[bytes, str]:
    """Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics bytes, content type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST
