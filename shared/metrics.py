"""Prometheus metrics for API and sleep-debt observability.

Exposed via /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, make_asgi_app

# Sleep entry counters
sleep_entries_total = Counter(
    "sleep_entries_total",
    "Total sleep entry write attempts",
    ["status"],  # status: created, duplicate, rejected
)

invalid_intervals_total = Counter(
    "invalid_intervals_total",
    "Sleep intervals rejected by validation, by rule",
    ["stage", "rule"],  # stage: write, read
)

# Auth counters
auth_events_total = Counter(
    "auth_events_total",
    "Authentication events",
    ["event", "outcome"],  # event: register, login, logout
)

# API counters
api_requests_total = Counter(
    "api_requests_total",
    "Total API requests",
    ["endpoint", "method", "status_code"],
)

# Histograms
sleep_debt_duration_seconds = Histogram(
    "sleep_debt_duration_seconds",
    "Duration of building a sleep debt report",
)

api_response_duration_seconds = Histogram(
    "api_response_duration_seconds",
    "Duration of API responses",
    ["endpoint"],
)


def create_metrics_app():
    """Create ASGI app for /metrics endpoint."""
    return make_asgi_app()
