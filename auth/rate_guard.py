"""
auth/rate_guard.py -- Fixed-window request counter in front of the credential endpoints.

Built on the `limits` library (the engine slowapi wraps) rather than a
module-level dict:
  - The storage is injected. memory:// keeps counters in this process; a
    redis:// URI shares them across instances without touching call sites.
  - Increments are atomic per key inside the storage (a per-key lock for
    memory storage, INCR for redis), so two concurrent requests cannot both
    see the last free slot.
  - Memory storage evicts expired windows on its own timer and on access.

Windows are fixed, not sliding: the first hit for a key opens a window of
window_ms, every hit inside it increments the count, and the hit that pushes
the count past max_requests is the one rejected. Rejected hits still count.

Limitation: with memory:// each process enforces its own budget, so N
instances allow up to N * max_requests per window. That is accepted for a
single-instance deployment; set RATE_LIMIT_STORAGE_URI to a shared backend
before scaling out.

Layer rule: no imports from api/, profiles/, or notify/.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Mapping
from dataclasses import dataclass

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage, Storage, storage_from_string
from limits.strategies import FixedWindowRateLimiter

logger = logging.getLogger("jobportal.auth.rate_guard")

UNKNOWN_CLIENT = "unknown"


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_seconds: int

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_seconds),
        }


@dataclass(frozen=True)
class RatePolicy:
    """A named budget. prefix keeps endpoint classes in independent windows."""

    prefix: str
    window_ms: int
    max_requests: int


def default_policies(
    window_ms: int = 60_000,
    auth_max: int = 5,
    api_max: int = 100,
    search_max: int = 30,
    upload_max: int = 10,
) -> dict[str, RatePolicy]:
    return {
        "auth": RatePolicy("auth", window_ms, auth_max),
        "api": RatePolicy("api", window_ms, api_max),
        "search": RatePolicy("search", window_ms, search_max),
        "upload": RatePolicy("upload", window_ms, upload_max),
    }


def client_identity(headers: Mapping[str, str], peer: str | None = None) -> str:
    """Best-effort client address for rate-limit keys.

    Order: CF-Connecting-IP, first hop of X-Forwarded-For, socket peer,
    then the literal "unknown". All clients that reach the last fallback
    share one budget.
    """
    cf_ip = (headers.get("cf-connecting-ip") or "").strip()
    if cf_ip:
        return cf_ip
    forwarded = (headers.get("x-forwarded-for") or "").split(",")[0].strip()
    if forwarded:
        return forwarded
    return peer or UNKNOWN_CLIENT


class RateGuard:
    """Fixed-window counters keyed by client identity.

    Usage:
        guard = RateGuard()                               # memory://
        guard = RateGuard(storage_from_string("redis://localhost:6379"))
        decision = guard.check("auth:203.0.113.9", window_ms=60_000, max_requests=5)
    """

    def __init__(self, storage: Storage | None = None) -> None:
        self._storage = storage if storage is not None else MemoryStorage()
        self._limiter = FixedWindowRateLimiter(self._storage)

    @classmethod
    def from_uri(cls, uri: str) -> RateGuard:
        return cls(storage_from_string(uri))

    def check(self, client_key: str, window_ms: int, max_requests: int) -> RateDecision:
        """Count one request for client_key and decide whether it may proceed."""
        item = _window_item(window_ms, max_requests)
        allowed = self._limiter.hit(item, client_key)
        reset_at, remaining = self._limiter.get_window_stats(item, client_key)
        decision = RateDecision(
            allowed=allowed,
            limit=max_requests,
            remaining=remaining,
            reset_seconds=max(0, math.ceil(reset_at - time.time())),
        )
        if not allowed:
            logger.info("Rate limit exceeded for %s (limit %d per %dms)", client_key, max_requests, window_ms)
        return decision

    def check_policy(self, policy: RatePolicy, client: str) -> RateDecision:
        return self.check(f"{policy.prefix}:{client}", policy.window_ms, policy.max_requests)

    def clear(self, client_key: str, window_ms: int, max_requests: int) -> None:
        """Drop the current window for one key; the next hit opens a fresh one."""
        self._limiter.clear(_window_item(window_ms, max_requests), client_key)

    def reset(self) -> None:
        """Drop every window. Used by tests and operators."""
        self._storage.reset()


def _window_item(window_ms: int, max_requests: int) -> RateLimitItemPerSecond:
    # limits counts in whole seconds; sub-second windows round up to 1s.
    return RateLimitItemPerSecond(max_requests, max(1, math.ceil(window_ms / 1000)))
