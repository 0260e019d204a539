# =============================================================================
# Unit Tests — Stage Rate Limiter
# =============================================================================
#
# Redis limiter against FakeRedis, in-memory limiter, and the blocking
# acquire() loop. A FakeClock drives every window.
# =============================================================================

import pytest

from docpipe.services.rate_limiter import InMemoryRateLimiter, RedisRateLimiter, acquire


class TestRedisRateLimiter:
    def test_allows_up_to_limit(self, fake_redis, clock):
        limiter = RedisRateLimiter(fake_redis, clock=clock)
        assert [limiter.try_acquire("extraction", 3, 60) for _ in range(3)] == [0.0] * 3
        assert limiter.starts_in_window("extraction", 60) == 3

    def test_over_limit_waits_for_oldest(self, fake_redis, clock):
        limiter = RedisRateLimiter(fake_redis, clock=clock)
        limiter.try_acquire("extraction", 2, 60)
        clock.now += 10
        limiter.try_acquire("extraction", 2, 60)
        clock.now += 5

        wait = limiter.try_acquire("extraction", 2, 60)

        assert wait == pytest.approx(45)
        # The refused claim is withdrawn
        assert limiter.starts_in_window("extraction", 60) == 2

    def test_window_slides(self, fake_redis, clock):
        limiter = RedisRateLimiter(fake_redis, clock=clock)
        limiter.try_acquire("validation", 1, 60)
        assert limiter.try_acquire("validation", 1, 60) > 0
        clock.now += 61
        assert limiter.try_acquire("validation", 1, 60) == 0.0

    def test_keys_are_per_stage_and_expire(self, fake_redis, clock):
        limiter = RedisRateLimiter(fake_redis, key_prefix="test", clock=clock)
        limiter.try_acquire("extraction", 1, 60)
        assert limiter.try_acquire("ai_enrichment", 1, 60) == 0.0
        assert set(fake_redis.zsets) == {
            "test:ratelimit:extraction",
            "test:ratelimit:ai_enrichment",
        }
        assert fake_redis.ttls["test:ratelimit:extraction"] == 70


class TestInMemoryRateLimiter:
    def test_same_semantics(self, clock):
        limiter = InMemoryRateLimiter(clock=clock)
        assert limiter.try_acquire("k", 2, 60) == 0.0
        clock.now += 20
        assert limiter.try_acquire("k", 2, 60) == 0.0
        assert limiter.try_acquire("k", 2, 60) == pytest.approx(40)
        clock.now += 40
        assert limiter.try_acquire("k", 2, 60) == 0.0


class TestAcquire:
    def test_returns_immediately_with_free_slot(self, clock):
        limiter = InMemoryRateLimiter(clock=clock)
        assert acquire(limiter, "k", 1, 60, sleep=clock.sleep) == 0.0
        assert clock.sleeps == []

    def test_polls_until_slot_frees(self, clock):
        limiter = InMemoryRateLimiter(clock=clock)
        acquire(limiter, "k", 1, 10, sleep=clock.sleep)

        waited = acquire(limiter, "k", 1, 10, poll_seconds=4, sleep=clock.sleep)

        assert clock.sleeps == [4, 4, 2]
        assert waited == pytest.approx(10)

    def test_without_poll_cap_sleeps_full_wait(self, clock):
        limiter = InMemoryRateLimiter(clock=clock)
        acquire(limiter, "k", 1, 30, sleep=clock.sleep)
        acquire(limiter, "k", 1, 30, poll_seconds=0, sleep=clock.sleep)
        assert clock.sleeps == [30]
