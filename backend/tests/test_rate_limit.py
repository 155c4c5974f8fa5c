from types import SimpleNamespace

from eventskona.core.config import settings
from eventskona.core.rate_limit import (
    RATE_LIMITS,
    MemoryRateLimitStore,
    RateLimitConfig,
    RateLimiter,
    get_client_ip,
)


class FakeClock:
    def __init__(self, now_ms=1_000_000):
        self.now_ms = now_ms

    def __call__(self):
        return self.now_ms

    def advance(self, ms):
        self.now_ms += ms


AUTH = RATE_LIMITS["auth"]


def make_limiter():
    clock = FakeClock()
    return RateLimiter(MemoryRateLimitStore(), clock=clock), clock


def test_auth_limit_allows_five_then_blocks():
    limiter, clock = make_limiter()

    results = [limiter.check("1.2.3.4:/api/auth/login", AUTH) for _ in range(5)]
    assert all(r.allowed for r in results)
    assert [r.remaining for r in results] == [4, 3, 2, 1, 0]

    blocked = limiter.check("1.2.3.4:/api/auth/login", AUTH)
    assert not blocked.allowed
    assert blocked.remaining == 0
    assert blocked.retry_after > 0
    assert blocked.retry_after == 15 * 60


def test_window_restarts_after_reset_time():
    limiter, clock = make_limiter()
    for _ in range(6):
        last = limiter.check("key", AUTH)
    assert not last.allowed

    clock.advance(AUTH.window_ms)
    fresh = limiter.check("key", AUTH)
    assert fresh.allowed
    assert fresh.remaining == AUTH.max - 1
    assert fresh.reset_at == clock.now_ms + AUTH.window_ms


def test_retry_after_rounds_up_to_whole_seconds():
    limiter, clock = make_limiter()
    config = RateLimitConfig(window_ms=10_000, max=1)
    limiter.check("key", config)
    clock.advance(8_500)
    assert limiter.check("key", config).retry_after == 2


def test_identifiers_are_counted_separately():
    limiter, _ = make_limiter()
    config = RateLimitConfig(window_ms=60_000, max=1)
    assert limiter.check("a", config).allowed
    assert limiter.check("b", config).allowed
    assert not limiter.check("a", config).allowed


def test_sweep_removes_only_expired_windows():
    store = MemoryRateLimitStore()
    clock = FakeClock()
    limiter = RateLimiter(store, clock=clock)

    limiter.check("short", RateLimitConfig(window_ms=1_000, max=5))
    limiter.check("long", RateLimitConfig(window_ms=60_000, max=5))
    clock.advance(5_000)

    assert limiter.sweep() == 1
    assert len(store) == 1


def test_reset_clears_everything():
    limiter, _ = make_limiter()
    limiter.check("key", AUTH)
    limiter.reset()
    assert len(limiter.store) == 0


def test_custom_store_is_used():
    calls = []

    class RecordingStore(MemoryRateLimitStore):
        def hit(self, key, now_ms, config):
            calls.append(key)
            return super().hit(key, now_ms, config)

    limiter = RateLimiter(RecordingStore(), clock=FakeClock())
    limiter.check("key", AUTH)
    assert calls == ["key"]


def _request(headers=None, host="10.0.0.1"):
    return SimpleNamespace(
        headers=headers or {},
        client=SimpleNamespace(host=host) if host else None,
    )


def test_client_ip_prefers_first_forwarded_hop():
    request = _request({"x-forwarded-for": "203.0.113.5, 10.0.0.2", "x-real-ip": "198.51.100.1"})
    assert get_client_ip(request) == "203.0.113.5"


def test_client_ip_falls_back_to_real_ip_then_peer():
    assert get_client_ip(_request({"x-real-ip": "198.51.100.1"})) == "198.51.100.1"
    assert get_client_ip(_request()) == "10.0.0.1"
    assert get_client_ip(_request(host=None)) == "unknown"


def test_client_ip_ignores_forwarding_headers_when_untrusted(monkeypatch):
    monkeypatch.setattr(settings, "TRUST_PROXY_HEADERS", False)
    request = _request({"x-forwarded-for": "203.0.113.5", "x-real-ip": "198.51.100.1"})
    assert get_client_ip(request) == "10.0.0.1"
