"""Prometheus metrics for continuity checks and canon bookkeeping."""
from __future__ import annotations

from prometheus_client import Counter, Histogram


ALERTS_CREATED_TOTAL = Counter(
    "realm_alerts_created_total",
    "Alerts persisted by continuity checks",
    ["type", "severity"],
)

ALERT_TRANSITIONS_TOTAL = Counter(
    "realm_alert_transitions_total",
    "Alert lifecycle transitions",
    ["from_status", "to_status"],
)

CHECK_RUNS_TOTAL = Counter(
    "realm_check_runs_total",
    "Continuity check runs by outcome",
    ["outcome"],
)

CHECK_LATENCY_SECONDS = Histogram(
    "realm_check_latency_seconds",
    "Latency of calls to the external continuity checker",
    buckets=(0.5, 1, 2, 5, 10, 20, 40, 60, 120),
)

LLM_CACHE_LOOKUPS_TOTAL = Counter(
    "realm_llm_cache_lookups_total",
    "LLM cache lookups by result",
    ["prompt_version", "result"],
)

DOCUMENT_CASCADE_DELETES_TOTAL = Counter(
    "realm_document_cascade_deletes_total",
    "Rows deleted while cascading a document removal",
    ["table"],
)

MAINTENANCE_ROWS_TOTAL = Counter(
    "realm_maintenance_rows_total",
    "Rows touched by scheduled maintenance jobs",
    ["job"],
)
