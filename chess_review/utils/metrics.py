# chess_review/utils/metrics.py
"""
Centralized Prometheus metrics definitions for the Chess Review application.

This module uses the prometheus-client library to define all metrics that will
be exposed by the application for monitoring and alerting. Grouping them here
provides a single, clear overview of the application's instrumentation points.
"""
from prometheus_client import Counter, Gauge, Histogram

# A common prefix for all application-specific metrics.
PREFIX = "chess_review"

# --- Engine Channel Metrics ---

ENGINE_REQUESTS_TOTAL = Counter(
    f"{PREFIX}_engine_requests_total",
    "Total number of search requests sent to an engine channel.",
    ["channel"],  # e.g., channel="live", "review"
)

ENGINE_REQUEST_DURATION_SECONDS = Histogram(
    f"{PREFIX}_engine_request_duration_seconds",
    "Histogram of the time taken for one search request to complete.",
    ["channel"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, float("inf"))
)

ENGINE_STALLS_TOTAL = Counter(
    f"{PREFIX}_engine_stalls_total",
    "Total number of search requests that timed out.",
    ["channel"],
)

ENGINE_LINES_IGNORED_TOTAL = Counter(
    f"{PREFIX}_engine_lines_ignored_total",
    "Total number of engine output lines that carried nothing the interpreter uses.",
)

# --- Review & Live Play Metrics ---

REVIEWS_TOTAL = Counter(
    f"{PREFIX}_reviews_total",
    "Total number of batch reviews by how they ended.",
    ["outcome"],  # e.g., outcome="done", "cancelled", "failed"
)

JUDGEMENTS_TOTAL = Counter(
    f"{PREFIX}_judgements_total",
    "Total number of moves graded, by judgement category.",
    ["category"],
)

MOVES_SUBSTITUTED_TOTAL = Counter(
    f"{PREFIX}_moves_substituted_total",
    "Total number of engine moves replaced by a random legal move.",
)

LIVE_EVALUATION = Gauge(
    f"{PREFIX}_live_evaluation",
    "Most recent live evaluation, from White's perspective, in centipawns.",
)
