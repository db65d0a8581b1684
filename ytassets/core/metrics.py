"""Prometheus metrics for the generation dispatcher."""

from prometheus_client import Counter, Histogram, Info, generate_latest

APP_INFO = Info("ytassets", "YouTube asset generation dispatcher info")
APP_INFO.info({"version": "1.0.0", "name": "ytassets"})

JOBS_FINISHED = Counter(
    "generation_jobs_total",
    "Generation jobs by terminal status",
    ["status"],
)

PROVIDER_CALLS = Counter(
    "provider_calls_total",
    "Outbound provider calls by tool and classified outcome",
    ["tool", "outcome"],
)

CREDENTIALS_FLAGGED = Counter(
    "credentials_flagged_total",
    "Credentials deactivated after a failing call",
    ["provider"],
)

RATE_LIMIT_WAITS = Counter(
    "rate_limit_waits_total",
    "Admissions that had to wait for the sliding window",
)

BACKOFF_DELAY = Histogram(
    "retry_backoff_seconds",
    "Backoff delay applied before an infrastructure retry",
    buckets=[0.5, 1, 2, 4, 8, 16, 30, 60],
)


def metrics_text() -> bytes:
    """Render all metrics in the Prometheus text exposition format."""
    return generate_latest()
