"""Rate limiter domain models: pure dataclasses, no Redis dependency."""
from dataclasses import dataclass

from src.rl_common.enums import Algorithm, IdentityKind


@dataclass(frozen=True)
class Identity:
    """The rate-limited principal: a user id, or the client IP as fallback."""

    value: str
    kind: IdentityKind = IdentityKind.USER
    is_admin: bool = False

    @classmethod
    def user(cls, user_id: str, is_admin: bool = False) -> "Identity":
        return cls(value=user_id, kind=IdentityKind.USER, is_admin=is_admin)

    @classmethod
    def ip(cls, address: str) -> "Identity":
        return cls(value=address, kind=IdentityKind.IP)


@dataclass(frozen=True)
class Policy:
    limit: int
    window_seconds: int
    algorithm: Algorithm = Algorithm.FIXED_WINDOW
    unlimited: bool = False

    def __post_init__(self) -> None:
        if self.limit <= 0:
            raise ValueError(f"Policy limit must be positive, got {self.limit}")
        if self.window_seconds <= 0:
            raise ValueError(f"Policy window must be positive, got {self.window_seconds}")

    @property
    def window_ms(self) -> int:
        return self.window_seconds * 1000


@dataclass(frozen=True)
class Decision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int  # Unix ms
    retry_after_seconds: int = 0
    bypassed: bool = False  # admin identity, no store call made
    degraded: bool = False  # store failed, allowed by fail-open

    def headers(self) -> dict[str, str]:
        """Response metadata; empty when no real count stands behind the decision."""
        if self.bypassed or self.degraded:
            return {}
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(max(0, self.remaining)),
            "X-RateLimit-Reset": str(self.reset_at),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after_seconds)
        return headers

    def to_dict(self) -> dict[str, int | bool]:
        return {
            "allowed": self.allowed,
            "limit": self.limit,
            "remaining": max(0, self.remaining),
            "reset_at": self.reset_at,
            "retry_after_seconds": self.retry_after_seconds,
        }
