# src/rl_limiter/application/service.py
"""Decision surface: the only entry point middleware and routes call.

check() resolves the policy, picks the limiter (explicit argument, else the
endpoint's configured algorithm), runs one hit against the counter store and
returns a Decision. No state is held here; the store is the source of truth.

Failure policy (fail open):
  - StoreUnavailableError -> allowed, degraded=True, WARNING + metric
  - PolicyNotFoundError   -> allowed, degraded=True, ERROR + metric
A denial is a normal Decision(allowed=False), never an exception.
"""

import logging

from src.rl_common.datetime_utils import Clock, SystemClock
from src.rl_common.enums import Algorithm, Tier
from src.rl_common.errors import PolicyNotFoundError, StoreUnavailableError
from src.rl_limiter.application import metrics as m
from src.rl_limiter.application.fixed_window import FixedWindowLimiter
from src.rl_limiter.application.metrics import RateLimitMetrics
from src.rl_limiter.application.policy import PolicyResolver
from src.rl_limiter.application.sliding_window import SlidingWindowLimiter
from src.rl_limiter.domain.keys import counter_key, identity_digest
from src.rl_limiter.domain.models import Decision, Identity, Policy
from src.rl_limiter.domain.store import CounterStore

logger = logging.getLogger("rl.limiter")


class RateLimitService:
    def __init__(
        self,
        store: CounterStore,
        resolver: PolicyResolver,
        clock: Clock | None = None,
        metrics: RateLimitMetrics | None = None,
    ) -> None:
        self._resolver = resolver
        self._clock = clock or SystemClock()
        self._metrics = metrics or RateLimitMetrics()
        self._limiters: dict[Algorithm, FixedWindowLimiter | SlidingWindowLimiter] = {
            Algorithm.FIXED_WINDOW: FixedWindowLimiter(store),
            Algorithm.SLIDING_WINDOW: SlidingWindowLimiter(store),
        }

    @property
    def resolver(self) -> PolicyResolver:
        return self._resolver

    @property
    def metrics(self) -> RateLimitMetrics:
        return self._metrics

    async def check(
        self,
        identity: Identity,
        tier: Tier | None,
        endpoint_key: str,
        algorithm: Algorithm | None = None,
    ) -> Decision:
        try:
            policy = self._resolver.resolve(identity, tier, endpoint_key)
        except PolicyNotFoundError:
            logger.error(
                "No rate limit policy for endpoint=%s tier=%s, failing open",
                endpoint_key,
                tier.value if tier else None,
            )
            self._metrics.record(m.POLICY_NOT_FOUND, endpoint_key)
            now = self._clock.now_ms()
            return Decision(allowed=True, limit=0, remaining=0, reset_at=now, degraded=True)
        return await self.check_policy(identity, endpoint_key, policy, algorithm)

    async def check_policy(
        self,
        identity: Identity,
        endpoint_key: str,
        policy: Policy,
        algorithm: Algorithm | None = None,
    ) -> Decision:
        """Run one hit under an already-resolved policy (used by the IP guard)."""
        now = self._clock.now_ms()
        if policy.unlimited:
            self._metrics.record(m.BYPASSED, endpoint_key)
            return Decision(allowed=True, limit=0, remaining=0, reset_at=now, bypassed=True)

        algo = algorithm or policy.algorithm
        key = counter_key(identity, endpoint_key, algo)
        try:
            decision = await self._limiters[algo].hit(key, policy, now)
        except StoreUnavailableError as exc:
            logger.warning(
                "Rate limit store unavailable, failing open: endpoint=%s algorithm=%s error=%s",
                endpoint_key,
                algo.value,
                exc.message,
            )
            self._metrics.record(m.STORE_UNAVAILABLE, endpoint_key)
            return Decision(
                allowed=True,
                limit=policy.limit,
                remaining=policy.limit,
                reset_at=now + policy.window_ms,
                degraded=True,
            )

        if decision.allowed:
            self._metrics.record(m.ALLOWED, endpoint_key)
        else:
            self._metrics.record(m.DENIED, endpoint_key)
            logger.info(
                "Rate limit exceeded: endpoint=%s identity=%s:%s limit=%d retry_after=%ds",
                endpoint_key,
                identity.kind.value,
                identity_digest(identity),
                decision.limit,
                decision.retry_after_seconds,
            )
        return decision

    async def status(
        self,
        identity: Identity,
        tier: Tier | None,
        endpoint_key: str,
        algorithm: Algorithm | None = None,
    ) -> Decision:
        """Current quota for identity on endpoint, without consuming a request.

        Unlike check(), store and policy errors propagate: this is a read API,
        not the request hot path.
        """
        policy = self._resolver.resolve(identity, tier, endpoint_key)
        return await self.status_policy(identity, endpoint_key, policy, algorithm)

    async def status_policy(
        self,
        identity: Identity,
        endpoint_key: str,
        policy: Policy,
        algorithm: Algorithm | None = None,
    ) -> Decision:
        now = self._clock.now_ms()
        if policy.unlimited:
            return Decision(allowed=True, limit=0, remaining=0, reset_at=now, bypassed=True)
        algo = algorithm or policy.algorithm
        key = counter_key(identity, endpoint_key, algo)
        return await self._limiters[algo].peek(key, policy, now)
