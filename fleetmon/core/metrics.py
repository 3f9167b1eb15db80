from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "fleetmon_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

REQUEST_LATENCY = Histogram(
    "fleetmon_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
)

INGESTED_OBLIGATIONS = Counter(
    "fleetmon_ingested_obligations_total",
    "Telemetry obligations handled by the ingestion endpoint",
    ["kind"],
)

SWALLOWED_FAILURES = Counter(
    "fleetmon_swallowed_failures_total",
    "Best-effort store writes that failed and were not reported to the caller",
    ["kind"],
)

PROBE_RESULTS = Counter(
    "fleetmon_probe_results_total",
    "Health probe outcomes",
    ["outcome"],
)

ROLLOVER_RESETS = Counter(
    "fleetmon_rollover_resets_total",
    "Day-rollover reset attempts",
    ["outcome"],
)
