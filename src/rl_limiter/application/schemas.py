"""Pydantic schemas for the rate-limit API."""

from pydantic import BaseModel, Field

from src.rl_common.enums import Algorithm, IdentityKind, Tier
from src.rl_limiter.application.policy import EndpointRule, RateLimitConfig
from src.rl_limiter.domain.models import Decision, Identity


class CheckRequest(BaseModel):
    """Decision request from a gateway that cannot run the limiter in-process."""

    identity: str = Field(min_length=1, max_length=256)
    identity_kind: IdentityKind = IdentityKind.USER
    is_admin: bool = False
    tier: Tier | None = None
    endpoint_key: str = Field(default="general", min_length=1, max_length=128)
    algorithm: Algorithm | None = None

    def to_identity(self) -> Identity:
        return Identity(value=self.identity, kind=self.identity_kind, is_admin=self.is_admin)


class DecisionResponse(BaseModel):
    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int
    bypassed: bool
    degraded: bool
    headers: dict[str, str]

    @classmethod
    def from_decision(cls, decision: Decision) -> "DecisionResponse":
        return cls(
            **decision.to_dict(),
            bypassed=decision.bypassed,
            degraded=decision.degraded,
            headers=decision.headers(),
        )


class PoliciesResponse(BaseModel):
    tier_limits: dict[Tier, int]
    default_limit: int | None
    default_window_seconds: int
    default_algorithm: Algorithm
    ip_limit: int
    ip_window_seconds: int
    endpoint_rules: dict[str, EndpointRule]

    @classmethod
    def from_config(cls, config: RateLimitConfig) -> "PoliciesResponse":
        return cls(
            tier_limits=config.tier_limits,
            default_limit=config.default_limit,
            default_window_seconds=config.default_window_seconds,
            default_algorithm=config.default_algorithm,
            ip_limit=config.ip_limit,
            ip_window_seconds=config.ip_window_seconds,
            endpoint_rules=config.endpoint_rules,
        )
