"""Who is calling: bearer-token user, or client IP as fallback.

Authentication is not enforced here. A missing, expired or forged token just
means the caller is rate limited by IP under the global default policy.
"""

from dataclasses import dataclass

from starlette.requests import Request

from src.rl_common.enums import Tier
from src.rl_common.errors import InvalidCredentialsError
from src.rl_gateway.auth.jwt_handler import decode_token
from src.rl_limiter.domain.models import Identity


@dataclass(frozen=True)
class Caller:
    identity: Identity
    tier: Tier | None


def bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def client_ip(request: Request, trust_forwarded_for: bool = False) -> str:
    """Client address; first X-Forwarded-For hop only behind a trusted proxy."""
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    client = request.client
    return client.host if client and client.host else "unknown"


def resolve_caller(request: Request, trust_forwarded_for: bool = False) -> Caller:
    token = bearer_token(request)
    if token is not None:
        try:
            claims = decode_token(token)
        except InvalidCredentialsError:
            claims = None
        if claims is not None:
            return Caller(
                identity=Identity.user(claims.user_id, is_admin=claims.is_admin),
                tier=claims.tier,
            )
    return Caller(identity=Identity.ip(client_ip(request, trust_forwarded_for)), tier=None)
