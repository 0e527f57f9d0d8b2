"""Tests for quota decisions."""

from unittest.mock import MagicMock

import pytest
import redis

from project_service.cache.redis import RedisCache
from project_service.db.manager import DatabaseManager
from project_service.errors import LimitExceededError, LimitsUnavailableError, RemoteUnavailableError
from project_service.quota.counter import ResourceCounter
from project_service.quota.guard import QuotaDecision, QuotaGuard
from project_service.quota.limits import LimitsCache, ResourceKind, TenantLimits


@pytest.fixture
def guard(limits_cache: LimitsCache, remote: MagicMock) -> QuotaGuard:
    return QuotaGuard(limits_cache, ResourceCounter(), remote)


class TestEvaluate:
    """Tests for the pure allow/deny rule."""

    @pytest.mark.parametrize("kind", list(ResourceKind))
    @pytest.mark.parametrize(
        ("current", "ceiling", "allowed"),
        [(0, 1, True), (1, 2, True), (2, 2, False), (3, 2, False), (0, 0, False)],
    )
    def test_allowed_iff_below_ceiling(
        self, kind: ResourceKind, current: int, ceiling: int, allowed: bool
    ) -> None:
        limits = TenantLimits("t1", ceiling, ceiling, ceiling)
        decision = QuotaGuard.evaluate(kind, current, limits, "parent")

        assert decision.allowed is allowed
        assert decision.current == current
        assert decision.ceiling == ceiling

    def test_negative_count_treated_as_zero(self) -> None:
        limits = TenantLimits("t1", 1, 1, 1)
        decision = QuotaGuard.evaluate(ResourceKind.DOMAIN, -3, limits, "p1")

        assert decision.allowed is True
        assert decision.current == 0

    def test_denial_reason(self) -> None:
        limits = TenantLimits("t1", 2, 2, 2)
        decision = QuotaGuard.evaluate(ResourceKind.PROJECT, 2, limits, "t1")
        assert decision.reason == "Project limit reached (2/2)"


class TestQuotaDecision:
    """Tests for QuotaDecision."""

    def test_to_dict(self) -> None:
        decision = QuotaDecision(
            allowed=False,
            kind=ResourceKind.REPO,
            tenant_id="t1",
            parent_id="p1",
            current=3,
            ceiling=3,
            reason="Repository limit reached (3/3)",
        )
        data = decision.to_dict()

        assert data["allowed"] is False
        assert data["resource"] == "REPO"
        assert data["current"] == 3
        assert data["limit"] == 3

    def test_raise_for_denial(self) -> None:
        limits = TenantLimits("t1", 2, 2, 2)
        QuotaGuard.evaluate(ResourceKind.PROJECT, 1, limits, "t1").raise_for_denial()

        with pytest.raises(LimitExceededError) as exc_info:
            QuotaGuard.evaluate(ResourceKind.PROJECT, 2, limits, "t1").raise_for_denial()

        error = exc_info.value
        assert (error.current, error.ceiling) == (2, 2)
        assert str(error) == "Project limit reached (2/2). Upgrade your plan."


class TestCheckAndReserve:
    """Tests for QuotaGuard.check_and_reserve."""

    def test_cache_miss_fetches_once(
        self,
        guard: QuotaGuard,
        db_manager: DatabaseManager,
        limits_cache: LimitsCache,
        remote: MagicMock,
    ) -> None:
        """The first check populates the cache; later checks do not call out."""
        with db_manager.get_session() as session:
            first = guard.check_and_reserve(ResourceKind.PROJECT, "tenant-a", "tenant-a", session)
            second = guard.check_and_reserve(ResourceKind.PROJECT, "tenant-a", "tenant-a", session)

        assert first.allowed and second.allowed
        assert remote.fetch_limits.call_count == 1
        assert limits_cache.get("tenant-a").max_projects == 2

    def test_cached_limits_used(
        self,
        guard: QuotaGuard,
        db_manager: DatabaseManager,
        limits_cache: LimitsCache,
        remote: MagicMock,
    ) -> None:
        limits_cache.put("tenant-a", TenantLimits("tenant-a", 0, 0, 0))

        with db_manager.get_session() as session:
            decision = guard.check_and_reserve(ResourceKind.PROJECT, "tenant-a", "tenant-a", session)

        assert decision.allowed is False
        remote.fetch_limits.assert_not_called()

    def test_remote_failure_is_limits_unavailable(
        self,
        guard: QuotaGuard,
        db_manager: DatabaseManager,
        limits_cache: LimitsCache,
        remote: MagicMock,
    ) -> None:
        """A fetch failure is not a quota denial, and nothing is cached."""
        remote.fetch_limits.side_effect = RemoteUnavailableError("Tenant service unreachable (ReadTimeout)")

        with db_manager.get_session() as session:
            with pytest.raises(LimitsUnavailableError) as exc_info:
                guard.check_and_reserve(ResourceKind.PROJECT, "tenant-a", "tenant-a", session)

        assert not isinstance(exc_info.value, LimitExceededError)
        assert exc_info.value.tenant_id == "tenant-a"
        assert limits_cache.get("tenant-a") is None

    def test_recovers_after_remote_comes_back(
        self,
        guard: QuotaGuard,
        db_manager: DatabaseManager,
        remote: MagicMock,
        tenant_limits: dict[str, TenantLimits],
    ) -> None:
        remote.fetch_limits.side_effect = [RemoteUnavailableError("down"), tenant_limits["tenant-a"]]

        with db_manager.get_session() as session:
            with pytest.raises(LimitsUnavailableError):
                guard.check_and_reserve(ResourceKind.PROJECT, "tenant-a", "tenant-a", session)
            assert guard.check_and_reserve(ResourceKind.PROJECT, "tenant-a", "tenant-a", session).allowed


class TestRedisBackedLimits:
    """Limits resolution when the shared cache misbehaves."""

    @pytest.fixture
    def client(self) -> MagicMock:
        client = MagicMock()
        client.get.return_value = None
        return client

    def test_lost_lock_keeps_limits_unavailable(self, client: MagicMock, remote: MagicMock) -> None:
        """A Redis lock that expires during a timed-out fetch still yields LimitsUnavailable."""
        client.lock.return_value.release.side_effect = redis.exceptions.LockNotOwnedError(
            "Cannot release a lock that's no longer owned"
        )
        remote.fetch_limits.side_effect = RemoteUnavailableError("ReadTimeout")
        guard = QuotaGuard(LimitsCache(RedisCache(client=client)), ResourceCounter(), remote)

        with pytest.raises(LimitsUnavailableError):
            guard.resolve_limits("tenant-a")

    def test_redis_down_is_a_miss(self, client: MagicMock, remote: MagicMock) -> None:
        """With Redis unreachable the limits come from the tenant service."""
        client.lock.return_value.acquire.side_effect = redis.ConnectionError("refused")
        client.get.side_effect = redis.ConnectionError("refused")
        client.set.side_effect = redis.ConnectionError("refused")
        guard = QuotaGuard(LimitsCache(RedisCache(client=client)), ResourceCounter(), remote)

        limits = guard.resolve_limits("tenant-a")

        assert limits.max_projects == 2
        remote.fetch_limits.assert_called_once_with("tenant-a")
