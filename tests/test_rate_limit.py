"""Tests for the token bucket admission controller."""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from bytegate.app.core.config import Settings
from bytegate.app.middleware.rate_limit import (
    DEFAULT_TIER_POLICIES,
    AdmissionController,
    AdmissionDecision,
    Tier,
    TierPolicy,
    parse_tier,
    rate_limit_headers,
)


class TestAdmission:
    """Tests for check_admission on a single identity."""

    def test_free_tier_scenario(self, controller, clock):
        """Ten immediate calls pass, the eleventh waits 12s, then recovers."""
        remaining = []
        for _ in range(10):
            result = controller.check_admission("u1", "free")
            assert result.allowed is True
            assert result.retry_after is None
            remaining.append(result.remaining)
        assert remaining == [9, 8, 7, 6, 5, 4, 3, 2, 1, 0]

        denied = controller.check_admission("u1", "free")
        assert denied.allowed is False
        assert denied.remaining == 0
        assert denied.retry_after == 12
        assert denied.reset_time == int(clock.now + 12_000)

        clock.advance(12_000)
        result = controller.check_admission("u1", "free")
        assert result.allowed is True

    def test_allowed_result_fields(self, controller, clock):
        result = controller.check_admission("u1", Tier.FREE)
        assert result == AdmissionDecision(
            allowed=True,
            remaining=9,
            reset_time=int(clock.now + 60_000),
            limit=10,
        )

    def test_tier_defaults_to_free(self, controller):
        results = [controller.check_admission("u1") for _ in range(11)]
        assert [r.allowed for r in results].count(True) == 10
        assert results[0].limit == 10
        assert controller.check_admission("u2", None).limit == 10

    def test_different_identities_independent(self, controller):
        for _ in range(10):
            controller.check_admission("key1", "free")
        assert controller.check_admission("key1", "free").allowed is False
        assert controller.check_admission("key2", "free").allowed is True

    def test_denial_does_not_debit(self, controller, clock):
        for _ in range(10):
            controller.check_admission("u1", "free")
        for _ in range(5):
            assert controller.check_admission("u1", "free").allowed is False
        assert controller.get_bucket_stats("u1")["tokens"] == 0.0

        clock.advance(12_000)
        assert controller.check_admission("u1", "free").allowed is True

    def test_retry_after_covers_partial_token(self, controller, clock):
        for _ in range(10):
            controller.check_admission("u1", "free")
        clock.advance(6_000)  # half a token at 5/min

        result = controller.check_admission("u1", "free")
        assert result.allowed is False
        assert result.retry_after == 6

        clock.advance(result.retry_after * 1000)
        assert controller.check_admission("u1", "free").allowed is True


class TestRefill:
    """Tests for refill and saturation."""

    def test_refill_proportional_to_elapsed_time(self, controller, clock):
        for _ in range(10):
            controller.check_admission("u1", "free")

        clock.advance(30_000)  # 2.5 tokens at 5/min
        result = controller.check_admission("u1", "free")
        assert result.allowed is True
        assert result.remaining == 1
        assert controller.get_bucket_stats("u1")["tokens"] == pytest.approx(1.5)

    def test_refill_saturates_at_capacity(self, controller, clock):
        controller.check_admission("u1", "free")
        clock.advance(10 * 3_600_000)

        result = controller.check_admission("u1", "free")
        assert result.remaining == 9
        assert controller.get_bucket_stats("u1")["tokens"] == 9.0

    def test_remaining_never_exceeds_capacity(self, controller, clock):
        steps = [0, 0, 500, 12_000, 0, 90_000, 1, 3_600_000, 0, 250]
        for tier in Tier:
            capacity = DEFAULT_TIER_POLICIES[tier].burst_capacity
            for step in steps * 5:
                clock.advance(step)
                result = controller.check_admission(f"user-{tier.value}", tier)
                assert 0 <= result.remaining <= capacity - 1
                bucket = controller.get_bucket_stats(f"user-{tier.value}")
                assert 0.0 <= bucket["tokens"] <= capacity

    def test_clock_moving_backwards_keeps_tokens(self, controller, clock):
        for _ in range(5):
            controller.check_admission("u1", "free")
        start = clock.now

        clock.advance(-10_000)
        result = controller.check_admission("u1", "free")
        assert result.allowed is True
        assert result.remaining == 4
        assert controller.get_bucket_stats("u1")["last_refill_ms"] == start

        # Refill resumes from the latest timestamp seen, not the skewed one
        clock.now = start + 12_000
        result = controller.check_admission("u1", "free")
        assert result.remaining == 4


class TestTiers:
    """Tests for tier policies."""

    def test_tier_ordering(self, controller):
        admitted = {}
        for tier in Tier:
            admitted[tier] = sum(
                controller.check_admission(f"burst-{tier.value}", tier).allowed
                for _ in range(2500)
            )
        assert admitted[Tier.FREE] == 10
        assert admitted[Tier.PREMIUM] == 50
        assert admitted[Tier.ADMIN] == 2000
        assert admitted[Tier.FREE] <= admitted[Tier.PREMIUM] <= admitted[Tier.ADMIN]

    def test_premium_retry_after(self, controller):
        for _ in range(50):
            controller.check_admission("p1", "premium")
        result = controller.check_admission("p1", "premium")
        assert result.allowed is False
        assert result.retry_after == 2
        assert result.limit == 50

    def test_upgrade_applies_immediately_without_topping_up(self, controller, clock):
        for _ in range(10):
            controller.check_admission("u1", "free")

        result = controller.check_admission("u1", "premium")
        assert result.allowed is False
        assert result.retry_after == 2  # 30/min refill
        assert controller.get_bucket_stats("u1")["capacity"] == 50

        clock.advance(2_000)
        assert controller.check_admission("u1", "premium").allowed is True

    def test_downgrade_clamps_tokens(self, controller):
        controller.check_admission("u1", "premium")
        assert controller.get_bucket_stats("u1")["tokens"] == 49.0

        result = controller.check_admission("u1", "free")
        assert result.remaining == 9
        assert controller.get_bucket_stats("u1")["capacity"] == 10

    def test_parse_tier(self):
        assert parse_tier("admin") is Tier.ADMIN
        assert parse_tier(Tier.PREMIUM) is Tier.PREMIUM
        assert parse_tier("gold") is None
        assert parse_tier(None) is None
        assert parse_tier(3) is None

    def test_missing_policy_rejected(self):
        with pytest.raises(ValueError):
            AdmissionController(policies={Tier.FREE: TierPolicy(5, 10)})

    def test_from_settings(self, clock):
        config = Settings(
            _env_file=None,
            rate_limit_free_requests_per_minute=2,
            rate_limit_free_burst_size=3,
            rate_limit_max_idle_seconds=60,
        )
        controller = AdmissionController.from_settings(config, clock=clock)

        results = [controller.check_admission("u1", "free") for _ in range(4)]
        assert [r.allowed for r in results] == [True, True, True, False]
        assert results[-1].retry_after == 30
        assert controller.policy_for("premium") == TierPolicy(30, 50)

        clock.advance(61_000)
        assert controller.reclaim_idle() == 1


class TestFailOpen:
    """Bad input is allowed rather than rejected."""

    @pytest.mark.parametrize("identity", ["", None, 42])
    def test_invalid_identity_allowed(self, controller, clock, identity):
        with patch("bytegate.app.middleware.rate_limit.controller.logger") as mock_logger:
            result = controller.check_admission(identity, "free")

        assert result.allowed is True
        assert result.remaining == 0
        assert result.reset_time == int(clock.now + 60_000)
        assert controller.bucket_count == 0
        mock_logger.warning.assert_called_once()

    @pytest.mark.parametrize("tier", ["gold", "PREMIUM", 7])
    def test_unknown_tier_allowed(self, controller, tier):
        with patch("bytegate.app.middleware.rate_limit.controller.logger") as mock_logger:
            for _ in range(20):
                result = controller.check_admission("u1", tier)
                assert result.allowed is True
                assert result.remaining == 0

        assert controller.bucket_count == 0
        assert mock_logger.warning.call_count == 20

    def test_internal_error_allows(self):
        def broken_clock():
            raise RuntimeError("clock unavailable")

        controller = AdmissionController(clock=broken_clock)
        with patch("bytegate.app.middleware.rate_limit.controller.logger"):
            result = controller.check_admission("u1", "free")
        assert result.allowed is True
        assert result.remaining == 0


class TestReclaim:
    """Tests for idle bucket reclamation."""

    def test_reclaims_only_idle_buckets(self, controller, clock):
        controller.check_admission("old", "free")
        clock.advance(30 * 60_000)
        controller.check_admission("recent", "free")
        clock.advance(31 * 60_000)

        assert controller.reclaim_idle(3_600_000) == 1
        assert controller.get_bucket_stats("old") is None
        assert controller.get_bucket_stats("recent") is not None

    def test_reclaimed_identity_starts_full(self, controller, clock):
        for _ in range(10):
            controller.check_admission("u1", "free")
        clock.advance(2 * 3_600_000)

        controller.reclaim_idle()
        assert controller.bucket_count == 0

        result = controller.check_admission("u1", "free")
        assert result.remaining == 9

    def test_zero_max_age_clears_everything(self, controller):
        for identity in ("a", "b", "c"):
            controller.check_admission(identity, "free")
        assert controller.reclaim_idle(0) == 3
        assert controller.bucket_count == 0

    def test_failing_clock_falls_back_to_system_time(self, clock):
        failing = {"on": False}

        def flaky_clock():
            if failing["on"]:
                raise RuntimeError("clock unavailable")
            return clock()

        controller = AdmissionController(clock=flaky_clock)
        controller.check_admission("u1", "free")
        failing["on"] = True

        with patch("bytegate.app.middleware.rate_limit.controller.logger") as mock_logger:
            # The fake clock sits far behind system time, so the bucket is idle
            removed = controller.reclaim_idle(3_600_000)

        assert removed == 1
        assert controller.bucket_count == 0
        mock_logger.exception.assert_called_once()

    def test_bucket_stats_is_a_snapshot(self, controller):
        controller.check_admission("u1", "free")
        stats = controller.get_bucket_stats("u1")
        stats["tokens"] = 1000
        assert controller.get_bucket_stats("u1")["tokens"] == 9.0
        assert stats["identity"] == "u1"


class TestLifecycle:
    """Tests for the background reclamation task."""

    @pytest.mark.asyncio
    async def test_background_sweep_reclaims(self, clock):
        controller = AdmissionController(clock=clock, cleanup_interval=0.01, max_idle_ms=1_000)
        controller.check_admission("u1", "free")
        clock.advance(5_000)

        await controller.start()
        assert controller.is_running is True
        await controller.start()  # second start is a no-op

        for _ in range(100):
            if controller.bucket_count == 0:
                break
            await asyncio.sleep(0.01)
        assert controller.bucket_count == 0

        await controller.shutdown()
        assert controller.is_running is False

    @pytest.mark.asyncio
    async def test_shutdown_without_start(self, controller):
        await controller.shutdown()
        assert controller.is_running is False


class TestConcurrency:
    def test_threads_cannot_over_admit(self, controller):
        def hit(_):
            return controller.check_admission("shared", "free").allowed

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(hit, range(200)))

        assert results.count(True) == 10


class TestRateLimitHeaders:
    def test_allowed_headers(self):
        decision = AdmissionDecision(
            allowed=True, remaining=4, reset_time=1_700_000_060_500, limit=10
        )
        assert rate_limit_headers(decision) == {
            "X-RateLimit-Limit": "10",
            "X-RateLimit-Remaining": "4",
            "X-RateLimit-Reset": "1700000061",
        }

    def test_denied_headers_include_retry_after(self):
        decision = AdmissionDecision(
            allowed=False, remaining=0, reset_time=1_700_000_012_000, limit=10, retry_after=12
        )
        headers = rate_limit_headers(decision)
        assert headers["Retry-After"] == "12"
        assert headers["X-RateLimit-Remaining"] == "0"
        assert headers["X-RateLimit-Reset"] == "1700000012"
