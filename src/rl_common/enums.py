"""Global enums shared by the limiter, gateway and config layers."""

from enum import Enum


class Tier(str, Enum):
    """Service level attached to an identity; decides the default quota."""
    FREE = "FREE"
    STANDARD = "STANDARD"
    PREMIUM = "PREMIUM"


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    SERVICE = "SERVICE"  # internal callers of the decision API


class Algorithm(str, Enum):
    FIXED_WINDOW = "FIXED_WINDOW"
    SLIDING_WINDOW = "SLIDING_WINDOW"


class IdentityKind(str, Enum):
    USER = "USER"
    IP = "IP"


class StoreBackend(str, Enum):
    REDIS = "redis"
    MEMORY = "memory"
