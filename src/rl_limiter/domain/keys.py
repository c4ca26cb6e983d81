"""Counter store key layout.

    rate_limit:{fixed|sliding}:{endpoint_key}:{user|ip}:{digest}

The identity is hashed so user-supplied values (IPs from X-Forwarded-For,
ids with colons) cannot collide with or escape the key layout.
"""

import hashlib

from src.rl_common.enums import Algorithm
from src.rl_limiter.domain.models import Identity

KEY_PREFIX = "rate_limit"

_ALGORITHM_SEGMENT = {
    Algorithm.FIXED_WINDOW: "fixed",
    Algorithm.SLIDING_WINDOW: "sliding",
}


def identity_digest(identity: Identity) -> str:
    return hashlib.sha256(identity.value.encode()).hexdigest()[:24]


def counter_key(identity: Identity, endpoint_key: str, algorithm: Algorithm) -> str:
    return ":".join((
        KEY_PREFIX,
        _ALGORITHM_SEGMENT[algorithm],
        endpoint_key,
        identity.kind.value.lower(),
        identity_digest(identity),
    ))
