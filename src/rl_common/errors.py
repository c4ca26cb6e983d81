"""Unified error codes and custom exceptions.

Every error renders as the same envelope (see rl_common.response):
    {"success": false, "error": {"message": "...", "code": "RATE_LIMIT_EXCEEDED"}}

Codes are stable strings; clients branch on them, never on messages.
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: str,
        message: str,
        http_status: int = 500,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        self.headers = headers or {}
        super().__init__(message)


# --- Auth ---

class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__("UNAUTHORIZED", "Invalid or expired token", 401)


class ForbiddenError(AppError):
    def __init__(self, detail: str = "Admin access required") -> None:
        super().__init__("FORBIDDEN", detail, 403)


# --- Rate limiting ---

class RateLimitError(AppError):
    def __init__(
        self,
        message: str = "Rate limit exceeded",
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__("RATE_LIMIT_EXCEEDED", message, 429, headers)


class StoreUnavailableError(AppError):
    """Counter store unreachable, failing, or slower than the operation timeout.

    The limiter never lets this reach a client: the decision surface fails open.
    """

    def __init__(self, detail: str = "Counter store unavailable") -> None:
        super().__init__("STORE_UNAVAILABLE", detail, 503)


class PolicyNotFoundError(AppError):
    def __init__(self, endpoint_key: str) -> None:
        super().__init__(
            "POLICY_NOT_FOUND",
            f"No rate limit policy resolvable for endpoint {endpoint_key}",
            500,
        )


# --- System ---

class ConfigurationError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__("CONFIGURATION_ERROR", f"Invalid configuration: {detail}", 500)


class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__("INTERNAL_ERROR", detail, 500)
