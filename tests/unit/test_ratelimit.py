"""Tests for receipt_ledger.ratelimit."""

from __future__ import annotations

from receipt_ledger.ratelimit import InMemoryCounterStore, RateLimiter, Window


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestRateLimiter:
    """Tests for RateLimiter."""

    def test_allows_up_to_budget(self) -> None:
        limiter = RateLimiter(max_requests=3, window_seconds=60, clock=FakeClock())
        assert [limiter.check("user-1") for _ in range(4)] == [True, True, True, False]

    def test_identifiers_are_independent(self) -> None:
        limiter = RateLimiter(max_requests=1, window_seconds=60, clock=FakeClock())
        assert limiter.check("user-1")
        assert not limiter.check("user-1")
        assert limiter.check("user-2")

    def test_window_resets(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(max_requests=1, window_seconds=60, clock=clock)
        assert limiter.check("user-1")
        assert not limiter.check("user-1")

        clock.now += 60
        assert not limiter.check("user-1")

        clock.now += 0.5
        assert limiter.check("user-1")

    def test_rejected_requests_do_not_extend_window(self) -> None:
        clock = FakeClock()
        store = InMemoryCounterStore()
        limiter = RateLimiter(store, max_requests=1, window_seconds=60, clock=clock)
        limiter.check("user-1")
        clock.now += 30
        limiter.check("user-1")

        assert store.get("user-1") == Window(count=1, reset_at=1060.0)

    def test_uses_injected_store(self) -> None:
        store = InMemoryCounterStore()
        store.put("user-1", Window(count=5, reset_at=2000.0))
        limiter = RateLimiter(store, max_requests=5, window_seconds=60, clock=FakeClock())

        assert not limiter.check("user-1")

    def test_defaults(self) -> None:
        limiter = RateLimiter()
        assert limiter.max_requests == 100
        assert limiter.window_seconds == 900
        assert isinstance(limiter.store, InMemoryCounterStore)
