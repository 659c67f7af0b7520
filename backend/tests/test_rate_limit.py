"""Tests for the rate limiting pure function and middleware integration."""

from clouddrive.core.config import settings
from clouddrive.middleware.request_context import check_rate_limit, evict_stale


class TestCheckRateLimit:
    """Unit tests for the pure function, no middleware, no HTTP."""

    def test_allows_within_limit(self):
        bucket: dict = {}
        allowed, retry = check_rate_limit(bucket, "client-a", max_per_minute=60, now=0.0)
        assert allowed is True
        assert retry == 0.0

    def test_denies_after_exhaustion(self):
        bucket: dict = {}
        now = 0.0
        # Exhaust all tokens
        for _ in range(60):
            check_rate_limit(bucket, "client-a", max_per_minute=60, now=now)

        allowed, retry = check_rate_limit(bucket, "client-a", max_per_minute=60, now=now)
        assert allowed is False
        assert retry > 0

    def test_refills_over_time(self):
        bucket: dict = {}
        for _ in range(60):
            check_rate_limit(bucket, "client-a", max_per_minute=60, now=0.0)

        # 2 seconds later: ~2 tokens back
        allowed, _ = check_rate_limit(bucket, "client-a", max_per_minute=60, now=2.0)
        assert allowed is True

    def test_separate_keys_independent(self):
        bucket: dict = {}
        for _ in range(60):
            check_rate_limit(bucket, "client-a", max_per_minute=60, now=0.0)

        allowed, _ = check_rate_limit(bucket, "client-b", max_per_minute=60, now=0.0)
        assert allowed is True

    def test_zero_limit_always_allows(self):
        bucket: dict = {}
        allowed, _ = check_rate_limit(bucket, "any", max_per_minute=0, now=0.0)
        assert allowed is True


class TestEvictStale:

    def test_drops_only_idle_buckets(self):
        bucket = {"old": (3.0, 0.0), "fresh": (3.0, 290.0)}
        assert evict_stale(bucket, now=300.0, max_age=120.0) == 1
        assert list(bucket) == ["fresh"]

    def test_empty_bucket_table(self):
        assert evict_stale({}, now=10.0) == 0


class TestMiddleware:

    def test_returns_429_with_retry_after(self, client, monkeypatch):
        monkeypatch.setattr(settings, "rate_limit_per_minute", 2)
        for _ in range(2):
            assert client.get("/api/auth/me").status_code == 401

        resp = client.get("/api/auth/me")
        assert resp.status_code == 429
        assert resp.json()["error"] == "RATE_LIMITED"
        assert int(resp.headers["retry-after"]) >= 1

    def test_health_is_exempt(self, client, monkeypatch):
        monkeypatch.setattr(settings, "rate_limit_per_minute", 1)
        for _ in range(3):
            assert client.get("/health").status_code == 200
