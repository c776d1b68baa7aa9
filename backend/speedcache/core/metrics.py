from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

# Counters
reports_created_total = Counter(
    "reports_created_total",
    "Total number of report jobs created",
)
reports_finished_total = Counter(
    "reports_finished_total",
    "Total number of report jobs that reached a terminal status",
    ["status"],
)
stuck_reports_recovered_total = Counter(
    "stuck_reports_recovered_total",
    "Total number of stuck processing reports reset and re-driven",
)
cache_lookups_total = Counter(
    "cache_lookups_total",
    "Root route lookups by outcome",
    ["result"],
)

# Histograms
pagespeed_request_duration_seconds = Histogram(
    "pagespeed_request_duration_seconds",
    "Time spent waiting on a single PageSpeed Insights call",
    ["device"],
    buckets=[1, 2, 5, 10, 20, 30, 60, 120],
)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
