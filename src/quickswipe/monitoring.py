"""Monitoring configuration for the review service."""
from prometheus_client import Counter, Histogram, start_http_server

# Review metrics
reviews_recorded = Counter(
    "quickswipe_reviews_recorded_total",
    "Total number of quality submissions applied to progress records",
    ["outcome"],  # lapse / success
)

progress_added = Counter(
    "quickswipe_progress_added_total",
    "Total number of words added to review progress",
)

progress_removed = Counter(
    "quickswipe_progress_removed_total",
    "Total number of progress records removed",
    ["scope"],  # single / all
)

due_queries = Counter(
    "quickswipe_due_queries_total",
    "Total number of due-word queries",
)

# Link code metrics
link_codes_issued = Counter(
    "quickswipe_link_codes_issued_total",
    "Total number of link codes issued",
)

link_codes_redeemed = Counter(
    "quickswipe_link_codes_redeemed_total",
    "Total number of link code exchange attempts",
    ["result"],  # ok / not_found / expired
)

link_codes_swept = Counter(
    "quickswipe_link_codes_swept_total",
    "Total number of expired link codes evicted by the sweep",
)

# Error metrics
error_count = Counter(
    "quickswipe_errors_total",
    "Total number of errors encountered",
    ["error_type"],
)

# Performance metrics
request_duration = Histogram(
    "quickswipe_request_duration_seconds",
    "Duration of bot requests in seconds",
    ["handler"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
