"""
Operational Metrics for CostGuard

Prometheus metrics for the budget alert pipeline.
"""

from prometheus_client import Counter, Histogram

ALERT_RUNS_TOTAL = Counter(
    "costguard_alert_runs_total",
    "Total number of alert processing runs",
    ["mode", "status"]  # mode: scheduled|manual, status: success|failure
)

ALERT_RUN_DURATION_SECONDS = Histogram(
    "costguard_alert_run_duration_seconds",
    "Duration of alert processing runs",
    ["mode"],
    buckets=(0.5, 1, 5, 10, 30, 60, 120, 300)
)

BUDGETS_PROCESSED_TOTAL = Counter(
    "costguard_budgets_processed_total",
    "Budgets evaluated across runs",
    ["mode"]
)

BUDGETS_DEGRADED_TOTAL = Counter(
    "costguard_budgets_degraded_total",
    "Budgets whose spend query failed and were evaluated as zero spend"
)

ALERTS_TRIGGERED_TOTAL = Counter(
    "costguard_alerts_triggered_total",
    "Alerts emitted by the alert engine",
    ["alert_type", "severity"]
)

NOTIFICATIONS_TOTAL = Counter(
    "costguard_notifications_total",
    "Per-channel notification outcomes",
    ["channel", "outcome"]  # outcome: success|failure
)
