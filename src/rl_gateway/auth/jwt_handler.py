"""JWT access-token creation and verification.

Tokens are issued by the account service; this service only verifies them to
learn who is calling. Claims used here:
    sub   user id (rate-limit identity)
    tier  FREE / STANDARD / PREMIUM (optional; absent -> global default)
    role  USER / ADMIN / SERVICE (ADMIN bypasses rate limiting)
    type  must be "access"

HS256 with a shared JWT_SECRET, same as the issuing service.
create_access_token exists for tests and local tooling.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TypeVar

from jose import JWTError, jwt

from config.settings import settings
from src.rl_common.enums import Role, Tier
from src.rl_common.errors import InvalidCredentialsError

_ALGORITHM = settings.JWT_ALGORITHM  # "HS256"
_ACCESS_EXPIRE = timedelta(minutes=settings.JWT_EXPIRE_MINUTES)

E = TypeVar("E", Tier, Role)


@dataclass(frozen=True)
class AccessClaims:
    user_id: str
    tier: Tier | None
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def create_access_token(
    user_id: str,
    tier: Tier | None = None,
    role: Role = Role.USER,
    expires_in: timedelta = _ACCESS_EXPIRE,
) -> str:
    now = datetime.now(UTC)
    payload: dict[str, object] = {
        "sub": user_id,
        "role": role.value,
        "type": "access",
        "iat": now,
        "exp": now + expires_in,
    }
    if tier is not None:
        payload["tier"] = tier.value
    return str(jwt.encode(payload, settings.JWT_SECRET, algorithm=_ALGORITHM))


def decode_token(token: str) -> AccessClaims:
    """Decode and validate an access token.

    Raises:
        InvalidCredentialsError: bad signature, expired, wrong type or no subject.
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[_ALGORITHM],  # Explicit list prevents algorithm confusion
        )
    except JWTError:
        raise InvalidCredentialsError() from None

    if payload.get("type") != "access" or not payload.get("sub"):
        raise InvalidCredentialsError()

    return AccessClaims(
        user_id=str(payload["sub"]),
        tier=_parse_enum(Tier, payload.get("tier")),
        role=_parse_enum(Role, payload.get("role")) or Role.USER,
    )


def _parse_enum(enum_cls: type[E], value: object) -> E | None:
    """Unknown claim values degrade to None instead of rejecting the token."""
    try:
        return enum_cls(value) if value is not None else None
    except ValueError:
        return None
