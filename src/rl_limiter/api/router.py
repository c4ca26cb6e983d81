"""Rate-limit REST API.

  GET  /rate-limit/status    caller's current quota, nothing consumed
  POST /rate-limit/check     decision for another service (service token)
  GET  /rate-limit/policies  effective configuration (admin)
  GET  /rate-limit/metrics   Prometheus decision counters (admin)
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response

from config.settings import settings
from src.rl_common.enums import Algorithm
from src.rl_common.response import ApiResponse, success_response
from src.rl_gateway.auth.dependencies import (
    get_rate_limit_service,
    ip_rate_limit,
    require_admin,
    require_service,
)
from src.rl_gateway.auth.identity import resolve_caller
from src.rl_gateway.auth.jwt_handler import AccessClaims
from src.rl_limiter.application.policy import GENERAL_ENDPOINT
from src.rl_limiter.application.schemas import (
    CheckRequest,
    DecisionResponse,
    PoliciesResponse,
)
from src.rl_limiter.application.service import RateLimitService

router = APIRouter(prefix="/rate-limit", tags=["rate-limit"])

ServiceDep = Annotated[RateLimitService, Depends(get_rate_limit_service)]


@router.get("/status", response_model=ApiResponse)
async def get_status(
    request: Request,
    service: ServiceDep,
    endpoint: Annotated[str, Query(min_length=1, max_length=128)] = GENERAL_ENDPOINT,
    algorithm: Algorithm | None = None,
) -> ApiResponse:
    caller = resolve_caller(request, settings.TRUST_FORWARDED_FOR)
    decision = await service.status(caller.identity, caller.tier, endpoint, algorithm)
    return success_response(DecisionResponse.from_decision(decision).model_dump())


@router.post(
    "/check",
    response_model=ApiResponse,
    dependencies=[Depends(ip_rate_limit())],
)
async def check(
    body: CheckRequest,
    service: ServiceDep,
    _caller: Annotated[AccessClaims, Depends(require_service)],
) -> ApiResponse:
    decision = await service.check(
        body.to_identity(), body.tier, body.endpoint_key, body.algorithm
    )
    return success_response(DecisionResponse.from_decision(decision).model_dump())


@router.get("/policies", response_model=ApiResponse)
async def get_policies(
    service: ServiceDep,
    _admin: Annotated[AccessClaims, Depends(require_admin)],
) -> ApiResponse:
    data = PoliciesResponse.from_config(service.resolver.config)
    return success_response(data.model_dump(mode="json"))


@router.get("/metrics", response_class=Response)
async def get_metrics(
    service: ServiceDep,
    _admin: Annotated[AccessClaims, Depends(require_admin)],
) -> Response:
    return Response(service.metrics.render(), media_type=service.metrics.content_type)
