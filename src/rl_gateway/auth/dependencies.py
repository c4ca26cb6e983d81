"""FastAPI dependencies: service lookup, claims, role guards, route limits.

Usage in a router:
    from src.rl_gateway.auth.dependencies import ip_rate_limit, rate_limit, require_admin

    @router.post("/login", dependencies=[Depends(ip_rate_limit(10, 60))])
    async def login(...): ...

    verify_guard = ip_rate_limit(10, 900, count_failures_only=True)  # failures only

    @router.post("/verify", dependencies=[Depends(verify_guard)])
    async def verify(...): ...

    @router.post("/generate", dependencies=[Depends(rate_limit("ai:generate-image"))])
    async def generate(...): ...
"""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable

from fastapi import Depends, Request, Response

from config.settings import settings
from src.rl_common.enums import Algorithm, Role
from src.rl_common.errors import (
    ForbiddenError,
    InternalError,
    InvalidCredentialsError,
    RateLimitError,
    StoreUnavailableError,
)
from src.rl_gateway.auth.identity import bearer_token, client_ip, resolve_caller
from src.rl_gateway.auth.jwt_handler import AccessClaims, decode_token
from src.rl_limiter.application import metrics as m
from src.rl_limiter.application.service import RateLimitService
from src.rl_limiter.domain.models import Decision, Identity

logger = logging.getLogger("rl.limiter")

IP_ENDPOINT = "ip"


def get_rate_limit_service(request: Request) -> RateLimitService:
    service: RateLimitService | None = getattr(request.app.state, "rate_limiter", None)
    if service is None:
        raise InternalError("Rate limiter is not initialised")
    return service


def get_current_claims(request: Request) -> AccessClaims:
    """Validated access-token claims; HTTP 401 when missing or invalid."""
    token = bearer_token(request)
    if token is None:
        raise InvalidCredentialsError()
    return decode_token(token)


def require_admin(claims: AccessClaims = Depends(get_current_claims)) -> AccessClaims:
    if claims.role != Role.ADMIN:
        raise ForbiddenError()
    return claims


def require_service(claims: AccessClaims = Depends(get_current_claims)) -> AccessClaims:
    if claims.role not in (Role.SERVICE, Role.ADMIN):
        raise ForbiddenError("Service or admin token required")
    return claims


def _apply(decision: Decision, response: Response) -> None:
    if not decision.allowed:
        raise RateLimitError(
            f"Rate limit exceeded. Try again in {decision.retry_after_seconds} seconds.",
            headers=decision.headers(),
        )
    response.headers.update(decision.headers())


def rate_limit(
    endpoint_key: str, algorithm: Algorithm | None = None
) -> Callable[..., Awaitable[Decision]]:
    """Per-route limit keyed by the caller (user, else IP) under endpoint_key."""

    async def dependency(
        request: Request,
        response: Response,
        service: RateLimitService = Depends(get_rate_limit_service),
    ) -> Decision:
        caller = resolve_caller(request, settings.TRUST_FORWARDED_FOR)
        decision = await service.check(caller.identity, caller.tier, endpoint_key, algorithm)
        _apply(decision, response)
        return decision

    return dependency


def ip_rate_limit(
    max_requests: int | None = None,
    window_seconds: int | None = None,
    count_failures_only: bool = False,
) -> Callable[..., AsyncIterator[Decision]]:
    """IP guard for unauthenticated routes; defaults to RATE_LIMIT_IP_* settings.

    With count_failures_only the quota is read, not consumed, before the route
    runs, and one hit is recorded only when the route raises (a 401 for a bad
    password, any other AppError or HTTPException). Successful logins never
    count against the caller.
    """

    async def dependency(
        request: Request,
        response: Response,
        service: RateLimitService = Depends(get_rate_limit_service),
    ) -> AsyncIterator[Decision]:
        identity = Identity.ip(client_ip(request, settings.TRUST_FORWARDED_FOR))
        policy = service.resolver.ip_policy(max_requests, window_seconds)
        if not count_failures_only:
            decision = await service.check_policy(identity, IP_ENDPOINT, policy)
            _apply(decision, response)
            yield decision
            return

        try:
            decision = await service.status_policy(identity, IP_ENDPOINT, policy)
        except StoreUnavailableError as exc:
            logger.warning("IP guard status unavailable, failing open: %s", exc.message)
            service.metrics.record(m.STORE_UNAVAILABLE, IP_ENDPOINT)
            yield Decision(allowed=True, limit=0, remaining=0, reset_at=0, degraded=True)
            return
        _apply(decision, response)
        try:
            yield decision
        except Exception:
            await service.check_policy(identity, IP_ENDPOINT, policy)
            raise

    return dependency
