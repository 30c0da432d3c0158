"""Tests for the fixed-window rate limiter."""

from timekeeper.api.middleware import FixedWindowLimiter


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestFixedWindowLimiter:
    def test_allows_up_to_limit(self):
        limiter = FixedWindowLimiter(limit=3, window_seconds=60, clock=FakeClock())

        hits = [limiter.hit("10.0.0.1") for _ in range(4)]

        assert [h.allowed for h in hits] == [True, True, True, False]
        assert [h.remaining for h in hits] == [2, 1, 0, 0]

    def test_clients_counted_separately(self):
        limiter = FixedWindowLimiter(limit=1, window_seconds=60, clock=FakeClock())

        assert limiter.hit("10.0.0.1").allowed
        assert limiter.hit("10.0.0.2").allowed
        assert not limiter.hit("10.0.0.1").allowed

    def test_window_rolls_over(self):
        clock = FakeClock()
        limiter = FixedWindowLimiter(limit=1, window_seconds=60, clock=clock)
        limiter.hit("10.0.0.1")

        clock.now += 30
        blocked = limiter.hit("10.0.0.1")
        assert not blocked.allowed
        assert blocked.reset_seconds == 30

        clock.now += 30
        assert limiter.hit("10.0.0.1").allowed

    def test_expired_clients_are_pruned(self):
        clock = FakeClock()
        limiter = FixedWindowLimiter(limit=5, window_seconds=60, clock=clock)
        limiter.hit("10.0.0.1")
        limiter.hit("10.0.0.2")

        clock.now += 61
        limiter.hit("10.0.0.1")

        assert set(limiter._windows) == {"10.0.0.1"}

    def test_zero_limit_disables(self):
        assert not FixedWindowLimiter(limit=0).enabled
        assert FixedWindowLimiter(limit=100).enabled
