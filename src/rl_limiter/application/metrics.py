"""Prometheus counters for limiter decisions: the observability hook for fail-open.

Each RateLimitMetrics owns its registry, so the app exposes exactly one set of
series (scraped from /api/v1/rate-limit/metrics) and tests start from zero.
Counts are per worker process; Prometheus sums them across targets.
"""

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, generate_latest

ALLOWED = "allowed"
DENIED = "denied"
BYPASSED = "bypassed"
STORE_UNAVAILABLE = "store_unavailable"
POLICY_NOT_FOUND = "policy_not_found"

DECISIONS_METRIC = "rate_limit_decisions_total"


class RateLimitMetrics:
    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()
        self._decisions = Counter(
            "rate_limit_decisions",
            "Rate limit decisions by outcome and endpoint key",
            labelnames=("event", "endpoint"),
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record(self, event: str, endpoint_key: str) -> None:
        self._decisions.labels(event=event, endpoint=endpoint_key).inc()

    def render(self) -> bytes:
        """Prometheus text exposition of every series in this registry."""
        return generate_latest(self._registry)
