"""
tests/test_rate_guard.py -- Unit tests for auth/rate_guard.py.

Covers:
  - the request that exceeds max_requests is the one rejected
  - a fresh window (after clear/reset, or once the window elapses) admits again
  - keys and policy prefixes have independent budgets
  - header values and client identity resolution
"""

from __future__ import annotations

import time

import pytest

from auth.rate_guard import RateGuard, RatePolicy, client_identity, default_policies

WINDOW_MS = 60_000


@pytest.fixture
def guard() -> RateGuard:
    return RateGuard.from_uri("memory://")


class TestFixedWindow:
    def test_sixth_request_rejected(self, guard: RateGuard) -> None:
        decisions = [guard.check("auth:1.2.3.4", WINDOW_MS, 5) for _ in range(6)]
        assert [d.allowed for d in decisions] == [True, True, True, True, True, False]
        assert [d.remaining for d in decisions[:5]] == [4, 3, 2, 1, 0]
        assert decisions[5].remaining == 0

    def test_fresh_window_after_clear(self, guard: RateGuard) -> None:
        for _ in range(6):
            guard.check("auth:1.2.3.4", WINDOW_MS, 5)
        guard.clear("auth:1.2.3.4", WINDOW_MS, 5)
        assert guard.check("auth:1.2.3.4", WINDOW_MS, 5).allowed is True

    def test_fresh_window_after_reset(self, guard: RateGuard) -> None:
        for _ in range(6):
            guard.check("auth:1.2.3.4", WINDOW_MS, 5)
        guard.reset()
        decision = guard.check("auth:1.2.3.4", WINDOW_MS, 5)
        assert decision.allowed is True
        assert decision.remaining == 4

    def test_window_expires_with_time(self, guard: RateGuard) -> None:
        assert guard.check("short:1.2.3.4", 1000, 1).allowed is True
        assert guard.check("short:1.2.3.4", 1000, 1).allowed is False
        time.sleep(1.1)
        decision = guard.check("short:1.2.3.4", 1000, 1)
        assert decision.allowed is True
        assert decision.remaining == 0

    def test_keys_are_independent(self, guard: RateGuard) -> None:
        for _ in range(6):
            guard.check("auth:1.2.3.4", WINDOW_MS, 5)
        assert guard.check("auth:5.6.7.8", WINDOW_MS, 5).allowed is True

    def test_policies_are_independent(self, guard: RateGuard) -> None:
        auth = RatePolicy("auth", WINDOW_MS, 1)
        api = RatePolicy("api", WINDOW_MS, 1)
        assert guard.check_policy(auth, "1.2.3.4").allowed is True
        assert guard.check_policy(auth, "1.2.3.4").allowed is False
        assert guard.check_policy(api, "1.2.3.4").allowed is True

    def test_reset_seconds_within_window(self, guard: RateGuard) -> None:
        decision = guard.check("k", WINDOW_MS, 5)
        assert 0 <= decision.reset_seconds <= WINDOW_MS // 1000

    def test_headers(self, guard: RateGuard) -> None:
        headers = guard.check("k", WINDOW_MS, 5).headers()
        assert headers["X-RateLimit-Limit"] == "5"
        assert headers["X-RateLimit-Remaining"] == "4"
        assert "X-RateLimit-Reset" in headers


class TestDefaultPolicies:
    def test_presets(self) -> None:
        policies = default_policies()
        assert {name: p.max_requests for name, p in policies.items()} == {
            "auth": 5,
            "api": 100,
            "search": 30,
            "upload": 10,
        }
        assert all(p.window_ms == 60_000 for p in policies.values())


class TestClientIdentity:
    def test_cloudflare_header_wins(self) -> None:
        headers = {"cf-connecting-ip": "9.9.9.9", "x-forwarded-for": "1.1.1.1"}
        assert client_identity(headers, "10.0.0.1") == "9.9.9.9"

    def test_first_forwarded_hop(self) -> None:
        assert client_identity({"x-forwarded-for": "1.1.1.1, 2.2.2.2"}, "10.0.0.1") == "1.1.1.1"

    def test_socket_peer(self) -> None:
        assert client_identity({}, "10.0.0.1") == "10.0.0.1"

    def test_unknown_fallback(self) -> None:
        assert client_identity({}, None) == "unknown"
        assert client_identity({"x-forwarded-for": " "}, None) == "unknown"
