"""Request logging middleware.

One access line per request with method, path, status, latency, request ID
and the rate-limit outcome recorded by RateLimitMiddleware. Registered as the
outermost middleware so 429s and fail-open passes are logged too.

Log format:
    INFO [POST] /api/v1/ai/chat → 429 (3ms) req_a1b2c3d4e5f6 rl=denied
    INFO [GET] /api/v1/rate-limit/status → 200 (2ms) req_0f9e8d7c6b5a rl=7/10
"""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from src.rl_limiter.domain.models import Decision

logger = logging.getLogger("rl.request")


def _outcome(decision: Decision | None) -> str:
    if decision is None:
        return "-"
    if decision.bypassed:
        return "bypass"
    if decision.degraded:
        return "fail-open"
    if not decision.allowed:
        return "denied"
    return f"{decision.remaining}/{decision.limit}"


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.request_id = f"req_{uuid.uuid4().hex[:12]}"

        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        logger.info(
            "[%s] %s → %d (%.0fms) %s rl=%s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request.state.request_id,
            _outcome(getattr(request.state, "rate_limit", None)),
        )
        response.headers["X-Request-ID"] = request.state.request_id
        return response
