"""Prometheus metrics for the fetch proxy."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# Counters
fetches_total = Counter(
    "fetch_proxy_fetches_total",
    "Terminal fetch outcomes",
    ["outcome"],  # ok | ErrorCode value
)
hops_blocked_total = Counter(
    "fetch_proxy_hops_blocked_total",
    "URLs rejected by validation",
    ["code", "stage"],  # stage: origin | redirect
)
requests_rejected_total = Counter(
    "fetch_proxy_requests_rejected_total",
    "Requests refused before fetching (bad body, missing token)",
    ["code"],
)

# Histograms
fetch_duration_seconds = Histogram(
    "fetch_proxy_fetch_duration_seconds",
    "Total fetch time including redirects, in seconds",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 8.0, 10.0, 30.0),
)
response_size_bytes = Histogram(
    "fetch_proxy_response_size_bytes",
    "Downloaded body size in bytes",
    buckets=(1024, 10_000, 50_000, 100_000, 500_000, 1_048_576),
)
redirects_per_fetch = Histogram(
    "fetch_proxy_redirects_per_fetch",
    "Redirect hops followed per successful fetch",
    buckets=(0, 1, 2, 3, 4, 5),
)
