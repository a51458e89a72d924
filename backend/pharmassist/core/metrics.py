"""
Prometheus metrics collection module.

Metrics Categories:
- RED Metrics: HTTP rate, errors, duration
- Capability Metrics: which tier answered, tier failures, canned fallbacks
- Upstream Metrics: LLM / vision / speech / workflow latency and errors
- Cache Metrics: drug-name resolution cache hits/misses

All metrics follow Prometheus naming conventions:
- Counters: _total suffix
- Histograms: _seconds suffix for duration
"""
from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)

from pharmassist.core.logging import get_logger

logger = get_logger(__name__)

registry = REGISTRY

# ============================================================================
# RED METRICS - Rate, Errors, Duration
# ============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status"],
    registry=registry,
)

http_errors_total = Counter(
    "http_errors_total",
    "Total number of HTTP errors",
    ["method", "endpoint", "status_code"],
    registry=registry,
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=registry,
)

# ============================================================================
# CAPABILITY METRICS
# ============================================================================

capability_requests_total = Counter(
    "capability_requests_total",
    "Capability calls by the tier that produced the response",
    ["capability", "provenance"],
    registry=registry,
)

capability_tier_attempts_total = Counter(
    "capability_tier_attempts_total",
    "Tier attempts per capability",
    ["capability", "tier"],
    registry=registry,
)

capability_tier_failures_total = Counter(
    "capability_tier_failures_total",
    "Tier failures per capability and reason",
    ["capability", "tier", "reason"],
    registry=registry,
)

capability_duration_seconds = Histogram(
    "capability_duration_seconds",
    "End-to-end capability latency in seconds",
    ["capability"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
    registry=registry,
)

rate_limit_hits_total = Counter(
    "rate_limit_hits_total",
    "Capability calls rejected by the endpoint rate limiter",
    ["endpoint"],
    registry=registry,
)

tool_invocations_total = Counter(
    "tool_invocations_total",
    "Routed tool invocations by outcome",
    ["tool", "outcome"],
    registry=registry,
)

# ============================================================================
# UPSTREAM METRICS
# ============================================================================

upstream_requests_total = Counter(
    "upstream_requests_total",
    "Requests sent to external AI and reference services",
    ["upstream", "operation"],
    registry=registry,
)

upstream_errors_total = Counter(
    "upstream_errors_total",
    "Errors from external AI and reference services",
    ["upstream", "operation", "error_type"],
    registry=registry,
)

upstream_latency_seconds = Histogram(
    "upstream_latency_seconds",
    "External call latency in seconds",
    ["upstream", "operation"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=registry,
)

llm_tokens_total = Counter(
    "llm_tokens_total",
    "Completion API token usage",
    ["operation", "model", "direction"],
    registry=registry,
)

normalizer_outcomes_total = Counter(
    "normalizer_outcomes_total",
    "Response normalizer outcomes (parsed stage, fallback, upstream error)",
    ["outcome"],
    registry=registry,
)

# ============================================================================
# CACHE METRICS
# ============================================================================

cache_hits_total = Counter(
    "cache_hits_total",
    "Total number of cache hits",
    ["cache_type"],
    registry=registry,
)

cache_misses_total = Counter(
    "cache_misses_total",
    "Total number of cache misses",
    ["cache_type"],
    registry=registry,
)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def normalize_endpoint(path: str) -> str:
    """Strip query strings so metric labels keep low cardinality."""
    if "?" in path:
        path = path.split("?")[0]
    return path.rstrip("/") or "/"


def record_http_request(
    method: str,
    endpoint: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """Record HTTP request metrics (RED metrics)."""
    normalized_endpoint = normalize_endpoint(endpoint)

    http_requests_total.labels(
        method=method,
        endpoint=normalized_endpoint,
        status=str(status_code),
    ).inc()

    if status_code >= 400:
        http_errors_total.labels(
            method=method,
            endpoint=normalized_endpoint,
            status_code=str(status_code),
        ).inc()

    http_request_duration_seconds.labels(
        method=method,
        endpoint=normalized_endpoint,
    ).observe(duration_seconds)


def record_capability_result(capability: str, provenance: str, duration_seconds: float) -> None:
    """Record which tier answered a capability call and how long it took."""
    capability_requests_total.labels(capability=capability, provenance=provenance).inc()
    capability_duration_seconds.labels(capability=capability).observe(duration_seconds)


def record_tier_attempt(capability: str, tier: str) -> None:
    capability_tier_attempts_total.labels(capability=capability, tier=tier).inc()


def record_tier_failure(capability: str, tier: str, reason: str) -> None:
    """
    Record a failed tier.

    Args:
        reason: exception class name, or "unusable" for empty/invalid results
    """
    capability_tier_failures_total.labels(
        capability=capability,
        tier=tier,
        reason=reason,
    ).inc()


def record_rate_limit_hit(endpoint: str) -> None:
    rate_limit_hits_total.labels(endpoint=endpoint).inc()


def record_tool_invocation(tool: str, outcome: str) -> None:
    tool_invocations_total.labels(tool=tool, outcome=outcome).inc()


def record_upstream_request(upstream: str, operation: str, duration_seconds: float) -> None:
    upstream_requests_total.labels(upstream=upstream, operation=operation).inc()
    upstream_latency_seconds.labels(upstream=upstream, operation=operation).observe(
        duration_seconds
    )


def record_upstream_error(upstream: str, operation: str, error_type: str) -> None:
    upstream_errors_total.labels(
        upstream=upstream,
        operation=operation,
        error_type=error_type,
    ).inc()


def record_llm_tokens(
    operation: str,
    model: str,
    input_tokens: int,
    output_tokens: int,
) -> None:
    """Record completion token usage (OpenAI-style ``usage`` field)."""
    if input_tokens:
        llm_tokens_total.labels(operation=operation, model=model, direction="input").inc(
            input_tokens
        )
    if output_tokens:
        llm_tokens_total.labels(operation=operation, model=model, direction="output").inc(
            output_tokens
        )


def record_normalizer_outcome(outcome: str) -> None:
    normalizer_outcomes_total.labels(outcome=outcome).inc()


def record_cache_hit(cache_type: str) -> None:
    cache_hits_total.labels(cache_type=cache_type).inc()


def record_cache_miss(cache_type: str) -> None:
    cache_misses_total.labels(cache_type=cache_type).inc()


def get_metrics() -> bytes:
    """Prometheus text exposition of the default registry."""
    return generate_latest(registry)


def get_metrics_content_type(accept: Optional[str] = None) -> str:
    return CONTENT_TYPE_LATEST
