"""
Prometheus metrics for the current-weather cache service.
"""
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

# Application info metric
app_info = Info(
    "weathercache_app_info",
    "Application information for the current-weather cache service",
)

# Request metrics
request_counter = Counter(
    "weathercache_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status_code"],
)

# Latency metrics
request_duration = Histogram(
    "weathercache_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Cache metrics
cache_lookup_counter = Counter(
    "weathercache_cache_lookups_total",
    "Total number of cache lookups on the read path",
    ["result"],
)

cache_entries_gauge = Gauge(
    "weathercache_cache_entries",
    "Number of entries currently held in the cache",
)

cache_swept_counter = Counter(
    "weathercache_cache_swept_total",
    "Total number of expired entries removed by the periodic sweep",
)

# Upstream metrics
upstream_fetch_counter = Counter(
    "weathercache_upstream_fetches_total",
    "Total number of upstream weather API calls",
    ["outcome"],
)

upstream_fetch_duration = Histogram(
    "weathercache_upstream_fetch_duration_seconds",
    "Upstream weather API call duration in seconds",
    ["outcome"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)

# Degradation metrics
offline_fallback_counter = Counter(
    "weathercache_offline_fallbacks_total",
    "Total number of responses served from cache after an upstream failure",
)

refresh_rate_limited_counter = Counter(
    "weathercache_refresh_rate_limited_total",
    "Total number of manual refreshes rejected by the rate gate",
)

# Error metrics
error_counter = Counter(
    "weathercache_errors_total",
    "Total number of errors returned to callers",
    ["error_type", "endpoint"],
)

# Health metrics
health_check_counter = Counter(
    "weathercache_health_checks_total",
    "Total number of health check requests",
    ["status"],
)


def set_app_info(version: str, environment: str = "production"):
    """Set application information."""
    app_info.info(
        {"version": version, "environment": environment, "application": "weathercache"}
    )


def get_metrics() -> bytes:
    """Get all metrics in Prometheus format."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST
