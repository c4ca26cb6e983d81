"""Policy resolution: (identity, tier, endpoint) -> Policy.

Resolution order (first match wins):
  1. Admin identity          -> UNLIMITED (no store I/O at all)
  2. Endpoint rule limit     -> e.g. "ai:generate-game" 2/min
  3. Tier table              -> FREE / STANDARD / PREMIUM
  4. Global fallback default -> anonymous / tierless traffic
  5. Nothing                 -> PolicyNotFoundError

An endpoint rule without a limit still contributes its window and algorithm;
the limit then comes from steps 3-4.

RateLimitConfig is built once at startup from Settings. Validation rejects
non-positive values, unknown algorithms and a missing fallback when a tier is
left unconfigured, so misconfiguration fails the boot rather than a request.
"""

from pydantic import BaseModel, Field, ValidationError, model_validator

from config.settings import Settings
from src.rl_common.enums import Algorithm, Tier
from src.rl_common.errors import ConfigurationError, PolicyNotFoundError
from src.rl_limiter.domain.models import Identity, Policy

GENERAL_ENDPOINT = "general"


class EndpointRule(BaseModel):
    limit: int | None = Field(default=None, gt=0)
    window_seconds: int | None = Field(default=None, gt=0)
    algorithm: Algorithm | None = None
    path_prefixes: list[str] = Field(default_factory=list)


# Built-in endpoint table; RATE_LIMIT_ENDPOINT_RULES entries are merged over it.
DEFAULT_ENDPOINT_RULES: dict[str, EndpointRule] = {
    "ai:chat": EndpointRule(
        limit=20, window_seconds=60, algorithm=Algorithm.SLIDING_WINDOW,
        path_prefixes=["/api/v1/ai/chat"],
    ),
    "ai:generate-image": EndpointRule(
        limit=5, window_seconds=60, algorithm=Algorithm.SLIDING_WINDOW,
        path_prefixes=["/api/v1/ai/generate-image"],
    ),
    "ai:generate-game": EndpointRule(
        limit=2, window_seconds=60, algorithm=Algorithm.SLIDING_WINDOW,
        path_prefixes=["/api/v1/ai/generate-game"],
    ),
    "auth:verify": EndpointRule(limit=10, window_seconds=60, path_prefixes=["/api/v1/auth/verify"]),
    "payment:checkout": EndpointRule(
        limit=5, window_seconds=60, path_prefixes=["/api/v1/payments/checkout"],
    ),
    "graph:sync": EndpointRule(limit=2, window_seconds=5, path_prefixes=["/api/v1/graph/sync"]),
    "classroom:event": EndpointRule(
        limit=5, window_seconds=30, path_prefixes=["/api/v1/classrooms"],
    ),
    "grant:apply": EndpointRule(limit=3, window_seconds=86400, path_prefixes=["/api/v1/grants"]),
    "ar:scan": EndpointRule(limit=5, window_seconds=10, path_prefixes=["/api/v1/ar/scan"]),
}


class RateLimitConfig(BaseModel):
    tier_limits: dict[Tier, int]
    default_limit: int | None = Field(default=None, gt=0)
    default_window_seconds: int = Field(default=60, gt=0)
    default_algorithm: Algorithm = Algorithm.FIXED_WINDOW
    endpoint_rules: dict[str, EndpointRule] = Field(default_factory=dict)
    ip_limit: int = Field(default=30, gt=0)
    ip_window_seconds: int = Field(default=60, gt=0)

    @model_validator(mode="after")
    def _check_tiers(self) -> "RateLimitConfig":
        for tier, limit in self.tier_limits.items():
            if limit <= 0:
                raise ValueError(f"tier {tier.value} limit must be positive, got {limit}")
        missing = [t.value for t in Tier if t not in self.tier_limits]
        if missing and self.default_limit is None:
            raise ValueError(f"tiers {missing} have no limit and no global default is set")
        return self

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimitConfig":
        """Build and validate the config; raise ConfigurationError on bad values."""
        try:
            rules = dict(DEFAULT_ENDPOINT_RULES)
            for key, raw in settings.RATE_LIMIT_ENDPOINT_RULES.items():
                rules[key] = EndpointRule.model_validate(raw)
            return cls(
                tier_limits={
                    Tier.FREE: settings.RATE_LIMIT_TIER_FREE,
                    Tier.STANDARD: settings.RATE_LIMIT_TIER_STANDARD,
                    Tier.PREMIUM: settings.RATE_LIMIT_TIER_PREMIUM,
                },
                default_limit=settings.RATE_LIMIT_DEFAULT_LIMIT,
                default_window_seconds=settings.RATE_LIMIT_DEFAULT_WINDOW_SECONDS,
                default_algorithm=Algorithm(settings.RATE_LIMIT_DEFAULT_ALGORITHM),
                endpoint_rules=rules,
                ip_limit=settings.RATE_LIMIT_IP_LIMIT,
                ip_window_seconds=settings.RATE_LIMIT_IP_WINDOW_SECONDS,
            )
        except (ValidationError, ValueError) as exc:
            raise ConfigurationError(str(exc)) from exc


class PolicyResolver:
    """Maps (identity, tier, endpoint) to the effective Policy."""

    def __init__(self, config: RateLimitConfig) -> None:
        self._config = config
        self._unlimited = Policy(
            limit=1,
            window_seconds=config.default_window_seconds,
            algorithm=config.default_algorithm,
            unlimited=True,
        )
        # Longest prefix first so "/api/v1/ai/chat" beats "/api/v1/ai"
        self._prefixes = sorted(
            (
                (prefix, key)
                for key, rule in config.endpoint_rules.items()
                for prefix in rule.path_prefixes
            ),
            key=lambda item: len(item[0]),
            reverse=True,
        )

    @property
    def config(self) -> RateLimitConfig:
        return self._config

    def resolve(self, identity: Identity, tier: Tier | None, endpoint_key: str) -> Policy:
        if identity.is_admin:
            return self._unlimited

        rule = self._config.endpoint_rules.get(endpoint_key)
        window = (rule.window_seconds if rule else None) or self._config.default_window_seconds
        algorithm = (rule.algorithm if rule else None) or self._config.default_algorithm

        if rule is not None and rule.limit is not None:
            limit = rule.limit
        elif tier is not None and tier in self._config.tier_limits:
            limit = self._config.tier_limits[tier]
        elif self._config.default_limit is not None:
            limit = self._config.default_limit
        else:
            raise PolicyNotFoundError(endpoint_key)

        return Policy(limit=limit, window_seconds=window, algorithm=algorithm)

    def ip_policy(
        self, limit: int | None = None, window_seconds: int | None = None
    ) -> Policy:
        """Fixed-window policy for the unauthenticated IP guard."""
        return Policy(
            limit=limit or self._config.ip_limit,
            window_seconds=window_seconds or self._config.ip_window_seconds,
            algorithm=Algorithm.FIXED_WINDOW,
        )

    def endpoint_for_path(self, path: str) -> str:
        for prefix, key in self._prefixes:
            if path == prefix or path.startswith(prefix.rstrip("/") + "/"):
                return key
        return GENERAL_ENDPOINT
