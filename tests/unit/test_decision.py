"""Tests for Decision response metadata and Identity constructors."""

from src.rl_common.enums import Algorithm, IdentityKind
from src.rl_limiter.domain.keys import counter_key
from src.rl_limiter.domain.models import Decision, Identity


class TestDecisionHeaders:
    def test_allowed_headers(self) -> None:
        decision = Decision(allowed=True, limit=10, remaining=7, reset_at=1_700_000_060_000)
        assert decision.headers() == {
            "X-RateLimit-Limit": "10",
            "X-RateLimit-Remaining": "7",
            "X-RateLimit-Reset": "1700000060000",
        }

    def test_denied_adds_retry_after(self) -> None:
        decision = Decision(
            allowed=False, limit=3, remaining=0, reset_at=60_000, retry_after_seconds=59
        )
        assert decision.headers()["Retry-After"] == "59"

    def test_remaining_never_negative(self) -> None:
        decision = Decision(allowed=False, limit=3, remaining=-2, reset_at=0)
        assert decision.headers()["X-RateLimit-Remaining"] == "0"
        assert decision.to_dict()["remaining"] == 0

    def test_bypassed_and_degraded_have_no_headers(self) -> None:
        assert Decision(True, 0, 0, 0, bypassed=True).headers() == {}
        assert Decision(True, 10, 10, 0, degraded=True).headers() == {}


class TestIdentityAndKeys:
    def test_constructors(self) -> None:
        assert Identity.user("u1").kind == IdentityKind.USER
        assert Identity.ip("1.2.3.4").kind == IdentityKind.IP
        assert not Identity.ip("1.2.3.4").is_admin

    def test_key_layout_hides_raw_identity(self) -> None:
        key = counter_key(Identity.ip("10.0.0.1:evil"), "ai:chat", Algorithm.SLIDING_WINDOW)
        prefix, algo, *endpoint, kind, digest = key.split(":")
        assert (prefix, algo, kind) == ("rate_limit", "sliding", "ip")
        assert ":".join(endpoint) == "ai:chat"
        assert "evil" not in key
        assert len(digest) == 24

    def test_key_depends_on_algorithm_endpoint_and_identity(self) -> None:
        user = Identity.user("u1")
        keys = {
            counter_key(user, "general", Algorithm.FIXED_WINDOW),
            counter_key(user, "general", Algorithm.SLIDING_WINDOW),
            counter_key(user, "ai:chat", Algorithm.FIXED_WINDOW),
            counter_key(Identity.user("u2"), "general", Algorithm.FIXED_WINDOW),
        }
        assert len(keys) == 4
