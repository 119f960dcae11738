import pytest

from driver_verification.tools.ratelimit import FixedWindowRateLimiter


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_allows_up_to_limit_per_key():
    limiter = FixedWindowRateLimiter(limit=2, window_seconds=60, clock=FakeClock())
    assert limiter.allow("a@example.com") is True
    assert limiter.allow("a@example.com") is True
    assert limiter.allow("a@example.com") is False
    # other keys have their own window
    assert limiter.allow("b@example.com") is True


def test_window_expiry_resets_and_prunes():
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(limit=1, window_seconds=60, clock=clock)
    assert limiter.allow("a") is True
    assert limiter.allow("a") is False
    clock.now += 60
    assert limiter.allow("a") is True
    clock.now += 30
    limiter.allow("b")
    clock.now += 45
    limiter.allow("b")
    assert len(limiter) == 1


def test_zero_limit_refuses_everything():
    limiter = FixedWindowRateLimiter(limit=0, window_seconds=1, clock=FakeClock())
    assert limiter.allow("a") is False


@pytest.mark.parametrize("limit,window", [(-1, 60), (1, 0)])
def test_invalid_configuration(limit, window):
    with pytest.raises(ValueError):
        FixedWindowRateLimiter(limit=limit, window_seconds=window)
