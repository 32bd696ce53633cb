from app.services.rate_limiter import SlidingWindowRateLimiter


def make_limiter(clock) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(max_requests=10, window_seconds=60.0, clock=clock)


def test_eleventh_request_in_window_is_denied(clock) -> None:
    limiter = make_limiter(clock)
    for _ in range(10):
        assert limiter.try_admit("student-1")
    assert not limiter.try_admit("student-1")
    assert limiter.remaining("student-1") == 0


def test_window_slides(clock) -> None:
    limiter = make_limiter(clock)
    for _ in range(10):
        limiter.try_admit("student-1")
    clock.advance(59.9)
    assert not limiter.can_admit("student-1")
    clock.advance(0.1)
    assert limiter.can_admit("student-1")
    assert limiter.remaining("student-1") == 10


def test_retry_after_counts_down_from_oldest_request(clock) -> None:
    limiter = make_limiter(clock)
    for _ in range(10):
        limiter.try_admit("student-1")
    clock.advance(15)
    assert limiter.retry_after("student-1") == 45.0
    assert limiter.retry_after("someone-else") == 0.0


def test_actors_are_independent(clock) -> None:
    limiter = make_limiter(clock)
    for _ in range(10):
        limiter.try_admit("a")
    assert limiter.can_admit("b")
    assert limiter.remaining("b") == 10


def test_denied_attempt_is_not_recorded(clock) -> None:
    limiter = make_limiter(clock)
    for _ in range(10):
        if limiter.can_admit("a"):
            limiter.record_request("a")
    clock.advance(30)
    assert not limiter.try_admit("a")
    clock.advance(30)
    assert limiter.remaining("a") == 10
