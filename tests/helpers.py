"""Test doubles and builders shared by unit and integration tests."""

from src.rl_common.enums import Algorithm, Tier
from src.rl_limiter.application.metrics import DECISIONS_METRIC, RateLimitMetrics
from src.rl_limiter.application.policy import EndpointRule, RateLimitConfig

T0_MS = 1_700_000_000_000


class FakeClock:
    """Controllable time source; at(seconds) is relative to T0_MS."""

    def __init__(self, start_ms: int = T0_MS) -> None:
        self._start = start_ms
        self._now = start_ms

    def now_ms(self) -> int:
        return self._now

    def at(self, seconds: float) -> None:
        self._now = self._start + round(seconds * 1000)

    def advance(self, seconds: float) -> None:
        self._now += round(seconds * 1000)


def make_config(**overrides: object) -> RateLimitConfig:
    values: dict[str, object] = {
        "tier_limits": {Tier.FREE: 10, Tier.STANDARD: 60, Tier.PREMIUM: 300},
        "default_limit": 10,
        "default_window_seconds": 60,
        "endpoint_rules": {
            "ai:generate-image": EndpointRule(
                limit=5,
                window_seconds=60,
                algorithm=Algorithm.SLIDING_WINDOW,
                path_prefixes=["/api/v1/ai/generate-image"],
            ),
            # No limit: tier limit applies over a 30s sliding window
            "ai:chat": EndpointRule(
                window_seconds=30,
                algorithm=Algorithm.SLIDING_WINDOW,
                path_prefixes=["/api/v1/ai/chat"],
            ),
            "ai": EndpointRule(limit=50, path_prefixes=["/api/v1/ai"]),
        },
        "ip_limit": 3,
        "ip_window_seconds": 60,
    }
    values.update(overrides)
    return RateLimitConfig(**values)


def metric_count(metrics: RateLimitMetrics, event: str, endpoint: str | None = None) -> float:
    """Decision counter value for event, on one endpoint or summed over all."""
    total = 0.0
    for family in metrics.registry.collect():
        for sample in family.samples:
            if sample.name != DECISIONS_METRIC or sample.labels["event"] != event:
                continue
            if endpoint is None or sample.labels["endpoint"] == endpoint:
                total += sample.value
    return total
