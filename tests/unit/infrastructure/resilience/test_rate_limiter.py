import pytest

from nepa_integration.domain.models.api import RateLimitConfig
from nepa_integration.domain.models.errors import ConfigurationError
from nepa_integration.infrastructure.resilience.rate_limiter import RateLimiter


@pytest.fixture
def limiter(fake_clock):
    return RateLimiter(max_requests=5, time_window=1.0, clock=fake_clock, sleep=fake_clock.sleep)


@pytest.mark.asyncio
async def test_sixth_request_waits_for_window(limiter, fake_clock):
    start = fake_clock.now
    for _ in range(5):
        assert await limiter.admit("https://banking.test") == 0.0

    waited = await limiter.admit("https://banking.test")

    assert waited == pytest.approx(1.0)
    assert fake_clock.now - start == pytest.approx(1.0)
    assert fake_clock.sleeps == [pytest.approx(1.0)]


@pytest.mark.asyncio
async def test_targets_are_limited_independently(limiter, fake_clock):
    for _ in range(5):
        await limiter.admit("https://banking.test")

    assert await limiter.admit("https://credit.test") == 0.0
    assert fake_clock.sleeps == []
    assert limiter.tracked_targets == 2


@pytest.mark.asyncio
async def test_old_requests_leave_the_window(limiter, fake_clock):
    for _ in range(5):
        await limiter.admit("t")
    fake_clock.advance(1.0)

    assert limiter.get_wait_time("t") == 0.0
    assert await limiter.admit("t") == 0.0
    assert limiter.window_size("t") == 1


@pytest.mark.asyncio
async def test_get_wait_time_does_not_record(limiter, fake_clock):
    for _ in range(5):
        await limiter.admit("t")
    fake_clock.advance(0.25)

    assert limiter.get_wait_time("t") == pytest.approx(0.75)
    assert limiter.window_size("t") == 5


@pytest.mark.asyncio
async def test_update_and_reset(limiter):
    for _ in range(5):
        await limiter.admit("t")

    limiter.update(RateLimitConfig(window_seconds=1.0, max_requests=10))
    assert limiter.get_wait_time("t") == 0.0

    limiter.reset()
    assert limiter.tracked_targets == 0


@pytest.mark.parametrize("max_requests, time_window", [(0, 1.0), (-3, 1.0), (5, 0.0)])
def test_rejects_limits_that_could_never_admit(max_requests, time_window):
    with pytest.raises(ConfigurationError):
        RateLimiter(max_requests=max_requests, time_window=time_window)


@pytest.mark.asyncio
async def test_invalid_update_keeps_previous_limits(limiter):
    with pytest.raises(ConfigurationError):
        limiter.update(RateLimitConfig(window_seconds=1.0, max_requests=0))

    assert limiter.max_requests == 5
    assert await limiter.admit("t") == 0.0
