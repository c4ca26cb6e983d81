"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config.settings import Settings, settings
from src.rl_common.enums import StoreBackend
from src.rl_common.errors import AppError, ConfigurationError, StoreUnavailableError
from src.rl_common.redis_client import close_redis, create_redis
from src.rl_common.response import error_response
from src.rl_gateway.middleware.rate_limit import RateLimitMiddleware
from src.rl_gateway.middleware.request_log import RequestLogMiddleware
from src.rl_limiter.api.router import router as rate_limit_router
from src.rl_limiter.application.policy import PolicyResolver, RateLimitConfig
from src.rl_limiter.application.service import RateLimitService
from src.rl_limiter.infrastructure.memory_store import InMemoryCounterStore
from src.rl_limiter.infrastructure.redis_store import RedisCounterStore

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


def _store_backend(settings: Settings) -> StoreBackend:
    try:
        return StoreBackend(settings.RATE_LIMIT_STORE)
    except ValueError:
        raise ConfigurationError(
            f"RATE_LIMIT_STORE must be one of {[b.value for b in StoreBackend]}"
        ) from None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: validate config, wire the store and service. Shutdown: close Redis."""
    # Startup: config errors abort the boot
    config = RateLimitConfig.from_settings(settings)
    backend = _store_backend(settings)
    redis_client = None
    if backend is StoreBackend.MEMORY:
        logger.warning("Using in-memory rate limit store; counts are per process")
        store = InMemoryCounterStore()
    else:
        redis_client = create_redis(settings)
        store = RedisCounterStore(redis_client, settings.REDIS_OPERATION_TIMEOUT_MS)
        try:
            await store.get_ttl("rate_limit:startup-probe")
        except StoreUnavailableError as exc:
            # Fail open from the first request rather than refusing to start
            logger.warning("Redis not reachable at startup: %s", exc.message)
    app.state.rate_limiter = RateLimitService(store, PolicyResolver(config))
    yield
    # Shutdown
    if redis_client is not None:
        await close_redis(redis_client)


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


# Last added runs first: request log wraps the limiter so 429s are logged.
app.add_middleware(
    RateLimitMiddleware,
    enabled=settings.RATE_LIMIT_ENABLED,
    exempt_paths=settings.RATE_LIMIT_EXEMPT_PATHS,
    trust_forwarded_for=settings.TRUST_FORWARDED_FOR,
)
app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    resp = error_response(exc.code, exc.message)
    return JSONResponse(
        status_code=exc.http_status,
        content=resp.model_dump(),
        headers=exc.headers or None,
    )


app.include_router(rate_limit_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
