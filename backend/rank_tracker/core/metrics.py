from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest


http_requests_total = Counter(
    "http_requests_total",
    "Total number of HTTP requests.",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds.",
    ["method", "path"],
)

celery_task_duration_seconds = Histogram(
    "celery_task_duration_seconds",
    "Celery task duration in seconds.",
    ["task_name", "queue_name"],
)

scheduler_runs_total = Counter(
    "rank_scheduler_runs_total",
    "Rank scheduler runs by final status.",
    ["status"],
)

scheduler_run_duration_seconds = Histogram(
    "rank_scheduler_run_duration_seconds",
    "Rank scheduler run duration in seconds.",
)

provider_calls_total = Counter(
    "rank_provider_calls_total",
    "Rank provider lookups by provider and outcome.",
    ["provider", "outcome"],
)

history_rows_pruned_total = Counter(
    "rank_history_rows_pruned_total",
    "Rank observations deleted by the retention policy.",
)


def render_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
