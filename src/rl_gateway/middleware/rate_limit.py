"""Rate limiting middleware.

Runs before every routed handler:
  1. Skip exempt paths (health, docs, the decision API itself)
  2. Endpoint key from the longest matching rule prefix, else "general"
  3. Identity from the bearer token, else the client IP
  4. RateLimitService.check -> Decision
  5. Denied: 429 + Retry-After + error envelope
     Allowed: forward, then attach X-RateLimit-* headers

The decision is also stored on request.state.rate_limit for handlers.
Store outages never block traffic: check() fails open.
"""

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from src.rl_common.response import error_response
from src.rl_gateway.auth.identity import resolve_caller
from src.rl_limiter.application.service import RateLimitService

logger = logging.getLogger("rl.limiter")


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        enabled: bool = True,
        exempt_paths: list[str] | None = None,
        trust_forwarded_for: bool = False,
    ) -> None:
        super().__init__(app)
        self._enabled = enabled
        self._exempt = [p.rstrip("/") or "/" for p in exempt_paths or []]
        self._trust_forwarded_for = trust_forwarded_for

    def _is_exempt(self, path: str) -> bool:
        return any(path == p or path.startswith(p + "/") for p in self._exempt)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if not self._enabled or self._is_exempt(path):
            return await call_next(request)

        service: RateLimitService | None = getattr(request.app.state, "rate_limiter", None)
        if service is None:
            logger.error("Rate limiter not initialised, passing %s through", path)
            return await call_next(request)

        caller = resolve_caller(request, self._trust_forwarded_for)
        endpoint_key = service.resolver.endpoint_for_path(path)
        decision = await service.check(caller.identity, caller.tier, endpoint_key)
        request.state.rate_limit = decision

        if not decision.allowed:
            resp = error_response(
                "RATE_LIMIT_EXCEEDED",
                f"Rate limit exceeded. Try again in {decision.retry_after_seconds} seconds.",
            )
            return JSONResponse(
                status_code=429,
                content=resp.model_dump(),
                headers=decision.headers(),
            )

        response = await call_next(request)
        response.headers.update(decision.headers())
        return response
