"""Unit tests for RateLimitService: the decision surface."""
import logging
from unittest.mock import AsyncMock

import pytest

from src.rl_common.enums import Algorithm, Tier
from src.rl_common.errors import PolicyNotFoundError, StoreUnavailableError
from src.rl_limiter.application import metrics as m
from src.rl_limiter.application.policy import GENERAL_ENDPOINT, PolicyResolver
from src.rl_limiter.application.service import RateLimitService
from src.rl_limiter.domain.keys import identity_digest
from src.rl_limiter.domain.models import Identity
from src.rl_limiter.domain.store import LogAdmission
from src.rl_limiter.infrastructure.memory_store import InMemoryCounterStore
from tests.helpers import T0_MS, FakeClock, make_config, metric_count

USER = Identity.user("user-1")
ADMIN = Identity.user("admin-1", is_admin=True)


def _failing_store() -> AsyncMock:
    store = AsyncMock()
    error = StoreUnavailableError("Redis increment_and_expire failed: ConnectionError()")
    for name in (
        "increment_and_expire", "get_ttl", "add_timestamped_entry",
        "prune_and_count", "record_if_under_limit", "oldest_entry", "get_count",
    ):
        getattr(store, name).side_effect = error
    return store


class TestCheck:
    async def test_tier_limit_enforced(self, service: RateLimitService) -> None:
        decisions = [await service.check(USER, Tier.FREE, GENERAL_ENDPOINT) for _ in range(11)]
        assert all(d.allowed for d in decisions[:10])
        assert not decisions[10].allowed
        assert decisions[9].remaining == 0

    async def test_identities_are_isolated(self, service: RateLimitService) -> None:
        for _ in range(10):
            await service.check(USER, Tier.FREE, GENERAL_ENDPOINT)
        other = await service.check(Identity.user("user-2"), Tier.FREE, GENERAL_ENDPOINT)
        assert other.allowed and other.remaining == 9

    async def test_endpoints_are_isolated(self, service: RateLimitService) -> None:
        for _ in range(5):
            await service.check(USER, Tier.FREE, "ai:generate-image")
        assert not (await service.check(USER, Tier.FREE, "ai:generate-image")).allowed
        assert (await service.check(USER, Tier.FREE, GENERAL_ENDPOINT)).allowed

    async def test_user_and_ip_with_same_value_do_not_share_counter(
        self, service: RateLimitService
    ) -> None:
        for _ in range(10):
            await service.check(Identity.user("10.0.0.1"), Tier.FREE, GENERAL_ENDPOINT)
        ip_decision = await service.check(Identity.ip("10.0.0.1"), None, GENERAL_ENDPOINT)
        assert ip_decision.allowed and ip_decision.remaining == 9

    async def test_endpoint_algorithm_selects_sliding_window(self) -> None:
        store = AsyncMock()
        store.record_if_under_limit.return_value = LogAdmission(
            recorded=True, count=0, oldest_ms=T0_MS
        )
        service = RateLimitService(store, PolicyResolver(make_config()), clock=FakeClock())

        await service.check(USER, Tier.FREE, "ai:generate-image")

        store.record_if_under_limit.assert_awaited_once()
        assert store.record_if_under_limit.await_args.kwargs["limit"] == 5
        store.increment_and_expire.assert_not_awaited()

    async def test_explicit_algorithm_overrides_endpoint_rule(self) -> None:
        store = AsyncMock()
        store.increment_and_expire.return_value = 1
        service = RateLimitService(store, PolicyResolver(make_config()), clock=FakeClock())

        await service.check(USER, Tier.FREE, "ai:generate-image", Algorithm.FIXED_WINDOW)

        store.increment_and_expire.assert_awaited_once()
        store.record_if_under_limit.assert_not_awaited()
        key = store.increment_and_expire.await_args.args[0]
        assert key.startswith("rate_limit:fixed:ai:generate-image:user:")

    async def test_metrics_count_allowed_and_denied(self, service: RateLimitService) -> None:
        for _ in range(12):
            await service.check(USER, Tier.FREE, GENERAL_ENDPOINT)
        assert metric_count(service.metrics, m.ALLOWED) == 10
        assert metric_count(service.metrics, m.DENIED, GENERAL_ENDPOINT) == 2


class TestAdminBypass:
    async def test_admin_never_denied_and_never_touches_store(self) -> None:
        store = AsyncMock()
        service = RateLimitService(store, PolicyResolver(make_config()), clock=FakeClock())

        for _ in range(100):
            decision = await service.check(ADMIN, Tier.FREE, "ai:generate-image")
            assert decision.allowed
            assert decision.bypassed

        assert store.mock_calls == []
        assert metric_count(service.metrics, m.BYPASSED) == 100

    async def test_admin_after_heavy_prior_volume(
        self, service: RateLimitService, store: InMemoryCounterStore
    ) -> None:
        for _ in range(20):
            await service.check(Identity.user("admin-1"), Tier.FREE, GENERAL_ENDPOINT)
        decision = await service.check(ADMIN, Tier.FREE, GENERAL_ENDPOINT)
        assert decision.allowed
        assert decision.headers() == {}


class TestFailOpen:
    async def test_store_unavailable_allows_and_records(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        service = RateLimitService(
            _failing_store(), PolicyResolver(make_config()), clock=FakeClock()
        )

        with caplog.at_level(logging.WARNING, logger="rl.limiter"):
            fixed = await service.check(USER, Tier.FREE, GENERAL_ENDPOINT)
            sliding = await service.check(USER, Tier.FREE, "ai:generate-image")

        assert fixed.allowed and fixed.degraded
        assert sliding.allowed and sliding.degraded
        assert metric_count(service.metrics, m.STORE_UNAVAILABLE) == 2
        assert metric_count(service.metrics, m.STORE_UNAVAILABLE, "ai:generate-image") == 1
        assert any("failing open" in r.getMessage() for r in caplog.records)
        assert all(r.levelno == logging.WARNING for r in caplog.records)

    async def test_degraded_decision_has_no_quota_headers(self) -> None:
        service = RateLimitService(
            _failing_store(), PolicyResolver(make_config()), clock=FakeClock()
        )
        decision = await service.check(USER, Tier.FREE, GENERAL_ENDPOINT)
        assert decision.headers() == {}

    async def test_policy_not_found_allows_and_logs_error(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        store = AsyncMock()
        service = RateLimitService(
            store, PolicyResolver(make_config(default_limit=None)), clock=FakeClock()
        )

        with caplog.at_level(logging.ERROR, logger="rl.limiter"):
            decision = await service.check(Identity.ip("1.2.3.4"), None, GENERAL_ENDPOINT)

        assert decision.allowed and decision.degraded
        assert metric_count(service.metrics, m.POLICY_NOT_FOUND) == 1
        assert store.mock_calls == []
        assert caplog.records[0].levelno == logging.ERROR


class TestStatus:
    async def test_status_does_not_consume(self, service: RateLimitService) -> None:
        await service.check(USER, Tier.FREE, GENERAL_ENDPOINT)
        for _ in range(5):
            status = await service.status(USER, Tier.FREE, GENERAL_ENDPOINT)
        assert status.remaining == 9

    async def test_status_for_sliding_endpoint(self, service: RateLimitService) -> None:
        await service.check(USER, Tier.FREE, "ai:generate-image")
        status = await service.status(USER, Tier.FREE, "ai:generate-image")
        assert status.limit == 5
        assert status.remaining == 4

    async def test_status_propagates_store_errors(self) -> None:
        service = RateLimitService(
            _failing_store(), PolicyResolver(make_config()), clock=FakeClock()
        )
        with pytest.raises(StoreUnavailableError):
            await service.status(USER, Tier.FREE, GENERAL_ENDPOINT)

    async def test_status_propagates_policy_errors(self) -> None:
        service = RateLimitService(
            AsyncMock(), PolicyResolver(make_config(default_limit=None)), clock=FakeClock()
        )
        with pytest.raises(PolicyNotFoundError):
            await service.status(Identity.ip("1.2.3.4"), None, GENERAL_ENDPOINT)

    async def test_status_for_admin_is_bypassed(self, service: RateLimitService) -> None:
        assert (await service.status(ADMIN, None, GENERAL_ENDPOINT)).bypassed


class TestCheckPolicy:
    async def test_ip_guard_policy(
        self, service: RateLimitService, resolver: PolicyResolver
    ) -> None:
        ip = Identity.ip("203.0.113.9")
        policy = resolver.ip_policy()
        results = [(await service.check_policy(ip, "ip", policy)).allowed for _ in range(4)]
        assert results == [True, True, True, False]


class TestDenialLog:
    async def test_denial_logs_identity_digest_not_raw_value(
        self, service: RateLimitService, caplog: pytest.LogCaptureFixture
    ) -> None:
        caller = Identity.ip("203.0.113.9")
        with caplog.at_level(logging.INFO, logger="rl.limiter"):
            for _ in range(11):
                await service.check(caller, None, GENERAL_ENDPOINT)

        [record] = [r for r in caplog.records if "Rate limit exceeded" in r.getMessage()]
        assert "203.0.113.9" not in record.getMessage()
        assert identity_digest(caller) in record.getMessage()
