import pytest

from flashgen.utils import SlidingWindowRateLimiter, WindowExhausted


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.mark.unit
def test_window_allows_max_requests_then_blocks():
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(max_requests=3, window_seconds=60, clock=clock)
    for _ in range(3):
        limiter.acquire('openai-whisper')
    with pytest.raises(WindowExhausted) as exc:
        limiter.acquire('openai-whisper')
    assert exc.value.retry_after == pytest.approx(60)
    assert limiter.remaining('openai-whisper') == 0


@pytest.mark.unit
def test_window_slides_with_time():
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=10, clock=clock)
    limiter.acquire('k')
    clock.now += 4
    limiter.acquire('k')
    clock.now += 3
    with pytest.raises(WindowExhausted) as exc:
        limiter.acquire('k')
    assert exc.value.retry_after == pytest.approx(3)
    clock.now += 3
    limiter.acquire('k')
    assert limiter.remaining('k') == 0


@pytest.mark.unit
def test_keys_are_independent():
    limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60, clock=FakeClock())
    limiter.acquire('a')
    limiter.acquire('b')
    with pytest.raises(WindowExhausted):
        limiter.acquire('a')
    assert limiter.remaining('c') == 1


@pytest.mark.unit
def test_invalid_budget_rejected():
    with pytest.raises(ValueError):
        SlidingWindowRateLimiter(max_requests=0)
