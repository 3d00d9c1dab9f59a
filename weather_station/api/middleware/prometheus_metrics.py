from prometheus_client import Counter, Histogram

UPSTREAM_REQUESTS_TOTAL = Counter(
    "weather_upstream_requests_total",
    "Upstream HTTP requests by service and outcome",
    ["service", "outcome"],
)

UPSTREAM_RETRIES_TOTAL = Counter(
    "weather_upstream_retries_total",
    "Retries performed after transient upstream failures",
    ["service"],
)

UPSTREAM_REQUEST_DURATION = Histogram(
    "weather_upstream_request_duration_seconds",
    "Upstream request duration including retries",
    ["service"],
)

REFRESH_CYCLES_TOTAL = Counter(
    "weather_refresh_cycles_total",
    "Background refresh cycles by status",
    ["status"],
)

REFRESH_CYCLE_DURATION = Histogram(
    "weather_refresh_cycle_duration_seconds",
    "Background refresh cycle duration",
)

REFRESH_LOCATIONS_TOTAL = Counter(
    "weather_refresh_locations_total",
    "Locations refreshed by the background refresher",
    ["status"],
)
