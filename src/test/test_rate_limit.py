import pytest
from concurrent.futures import ThreadPoolExecutor, as_completed
from conftest import FakeClock
from security.rate_limiter import FixedWindowRateLimiter


@pytest.fixture
def limiter(clock):
    return FixedWindowRateLimiter(window_seconds=900, max_requests=5, clock=clock)


def test_allow_until_limit_then_deny(limiter):
    """
    Kiểm tra: với window=900s, limit=5 → 5 request đầu allow, request thứ 6 deny.
    """
    results = [limiter.check("10.0.0.1") for _ in range(6)]

    assert results[:5] == [(True, 1), (True, 2), (True, 3), (True, 4), (True, 5)]
    assert results[5] == (False, 6)  # đã vượt ngưỡng


def test_reset_after_window(limiter, clock):
    """
    Sau khi hết cửa sổ, đếm bắt đầu lại từ 1.
    """
    for _ in range(6):
        limiter.check("10.0.0.1")

    clock.advance(899)
    assert limiter.check("10.0.0.1") == (False, 7)

    clock.advance(1)
    assert limiter.check("10.0.0.1") == (True, 1)


def test_keys_are_isolated(limiter):
    for _ in range(6):
        limiter.check("10.0.0.1")
    assert limiter.check("10.0.0.2") == (True, 1)


def test_reset_key(limiter):
    for _ in range(6):
        limiter.check("10.0.0.1")
    limiter.reset("10.0.0.1")
    assert limiter.check("10.0.0.1") == (True, 1)


def test_cleanup_removes_expired_windows(limiter, clock):
    limiter.check("a")
    clock.advance(600)
    limiter.check("b")
    clock.advance(300)

    assert limiter.cleanup() == 1
    assert len(limiter) == 1


def test_concurrent_requests_same_key():
    """
    Bắn 50 request đồng thời với cùng 1 khoá: đúng 5 request được cho phép, các count không trùng nhau.
    """
    limiter = FixedWindowRateLimiter(window_seconds=900, max_requests=5, clock=FakeClock())
    results = []
    with ThreadPoolExecutor(max_workers=10) as ex:
        futures = [ex.submit(limiter.check, "10.0.0.9") for _ in range(50)]
        for f in as_completed(futures):
            results.append(f.result())

    allowed = [r for r in results if r[0]]
    counts = sorted(c for _, c in results)
    print("Allowed:", len(allowed))

    assert len(allowed) == 5
    assert counts == list(range(1, 51))
