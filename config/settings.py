from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Redis (defaults match docker-compose.yml for local dev)
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_OPERATION_TIMEOUT_MS: int = 250
    # "redis" in every shared deployment; "memory" only for single-process dev
    RATE_LIMIT_STORE: str = "redis"

    # JWT: no default, MUST be set in .env
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_MINUTES: int = 30

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_DEFAULT_LIMIT: int | None = 10  # None = no global fallback
    RATE_LIMIT_DEFAULT_ALGORITHM: str = "FIXED_WINDOW"
    RATE_LIMIT_TIER_FREE: int = 10
    RATE_LIMIT_TIER_STANDARD: int = 60
    RATE_LIMIT_TIER_PREMIUM: int = 300
    # JSON object merged over the built-in endpoint table, e.g.
    # {"ai:chat": {"limit": 30, "algorithm": "SLIDING_WINDOW"}}
    RATE_LIMIT_ENDPOINT_RULES: dict[str, dict[str, object]] = {}
    RATE_LIMIT_IP_LIMIT: int = 30
    RATE_LIMIT_IP_WINDOW_SECONDS: int = 60
    # The decision API carries its own IP guard
    RATE_LIMIT_EXEMPT_PATHS: list[str] = [
        "/health", "/docs", "/openapi.json", "/api/v1/rate-limit/check",
    ]
    TRUST_FORWARDED_FOR: bool = False  # only behind a trusted reverse proxy

    # App
    APP_NAME: str = "Tiered Rate Limiter"
    DEBUG: bool = False  # Safe default for production; set DEBUG=True in .env for local dev


settings = Settings()
