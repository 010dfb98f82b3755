from types import SimpleNamespace

from rate_limit import InMemoryRateLimiter, RedisRateLimiter, client_ip, rate_limit_key


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class FakeRedis:
    def __init__(self):
        self.counts = {}
        self.expiries = {}

    def incr(self, key):
        self.counts[key] = self.counts.get(key, 0) + 1
        return self.counts[key]

    def expire(self, key, seconds):
        self.expiries[key] = seconds


def _request(headers=None, host="10.0.0.5"):
    client = SimpleNamespace(host=host) if host else None
    return SimpleNamespace(headers=headers or {}, client=client)


def test_in_memory_window_refuses_eleventh_request():
    clock = FakeClock()
    limiter = InMemoryRateLimiter(max_requests=10, window_seconds=60, clock=clock)

    assert all(limiter.allow("u1:ip") for _ in range(10))
    assert limiter.allow("u1:ip") is False
    assert limiter.allow("u2:ip") is True


def test_in_memory_window_resets_after_expiry():
    clock = FakeClock()
    limiter = InMemoryRateLimiter(max_requests=2, window_seconds=60, clock=clock)
    limiter.allow("k")
    limiter.allow("k")
    assert limiter.allow("k") is False

    clock.now += 60
    assert limiter.allow("k") is True


def test_redis_limiter_sets_expiry_on_first_hit_only():
    client = FakeRedis()
    limiter = RedisRateLimiter(client, max_requests=2, window_seconds=30)

    assert limiter.allow("7:1.2.3.4") is True
    assert limiter.allow("7:1.2.3.4") is True
    assert limiter.allow("7:1.2.3.4") is False
    assert client.expiries == {"ratelimit:7:1.2.3.4": 30}


def test_client_ip_prefers_first_forwarded_address():
    assert client_ip(_request({"x-forwarded-for": "203.0.113.9, 10.0.0.1"})) == "203.0.113.9"
    assert client_ip(_request()) == "10.0.0.5"
    assert client_ip(_request(host=None)) == "unknown"
    assert rate_limit_key(42, _request()) == "42:10.0.0.5"
