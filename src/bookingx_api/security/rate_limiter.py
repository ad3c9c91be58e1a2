"""Fixed-window rate limiter backed by the credential store.

Each (identifier, endpoint) pair gets ``limit`` requests per window, where
``window_start = floor(now / window) * window``. The admission decision is a
single conditional upsert in the store, so concurrent requests against one
shared database never admit more than ``limit`` per window.

Identifiers are built by the request pipeline: ``key:<key_id>``,
``token:<digest>``, ``user:<id>`` or ``ip:<address>``.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable

from bookingx_api.store.protocol import CredentialStoreProtocol

__all__ = [
    "DEFAULT_LIMIT",
    "DEFAULT_WINDOW",
    "FixedWindowRateLimiter",
    "RateLimitInfo",
]

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 1000
DEFAULT_WINDOW = 3600  # seconds


class RateLimitInfo:
    """Rate limit state returned by ``check()``."""

    __slots__ = ("allowed", "limit", "remaining", "reset_at")

    def __init__(self, allowed: bool, limit: int, remaining: int, reset_at: int):
        self.allowed = allowed
        self.limit = limit
        self.remaining = remaining
        self.reset_at = reset_at

    def __repr__(self) -> str:
        return (
            f"RateLimitInfo(allowed={self.allowed}, limit={self.limit}, "
            f"remaining={self.remaining}, reset_at={self.reset_at})"
        )

    def retry_after(self, now: float) -> int:
        """Seconds until the window resets, never less than 1."""
        return max(1, math.ceil(self.reset_at - now))

    def headers(self, now: float | None = None) -> dict[str, str]:
        """Return rate-limit response headers (RFC 6585 style)."""
        h: dict[str, str] = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }
        if not self.allowed:
            h["Retry-After"] = str(self.retry_after(time.time() if now is None else now))
        return h


class FixedWindowRateLimiter:
    """Per-identifier, per-endpoint request counter.

    Parameters
    ----------
    store : CredentialStoreProtocol
        Holds the counters; the single source of truth across processes.
    default_limit : int
        Requests per window when no custom per-key limit applies.
    window : int
        Window length in seconds.
    """

    def __init__(
        self,
        store: CredentialStoreProtocol,
        default_limit: int = DEFAULT_LIMIT,
        window: int = DEFAULT_WINDOW,
        clock: Callable[[], float] = time.time,
    ):
        if window <= 0:
            raise ValueError("window must be positive")
        self.store = store
        self.default_limit = default_limit
        self.window = window
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    def window_start(self, now: float | None = None) -> int:
        now = self._clock() if now is None else now
        return int(now // self.window) * self.window

    def resolve_limit(self, api_key_id: str | None = None) -> int:
        """The key's custom limit when it has one, else the default."""
        if api_key_id:
            custom = self.store.get_custom_rate_limit(api_key_id)
            if custom is not None:
                return custom
        return self.default_limit

    def check(self, identifier: str, endpoint: str, limit: int | None = None) -> RateLimitInfo:
        """Count one request and decide whether it is admitted."""
        limit = self.default_limit if limit is None else limit
        start = self.window_start()
        reset_at = start + self.window

        count = self.store.increment_rate_counter(identifier, endpoint, start, limit=limit)
        if count is None:
            logger.debug("Rate limit reached for %s on %s", identifier, endpoint)
            return RateLimitInfo(False, limit, 0, reset_at)
        return RateLimitInfo(True, limit, max(0, limit - count), reset_at)

    def peek(self, identifier: str, endpoint: str, limit: int | None = None) -> RateLimitInfo:
        """Current standing of a counter without charging it."""
        limit = self.default_limit if limit is None else limit
        start = self.window_start()
        count = self.store.get_rate_count(identifier, endpoint, start)
        remaining = max(0, limit - count)
        return RateLimitInfo(remaining > 0, limit, remaining, start + self.window)

    def cleanup(self) -> int:
        """Delete counters whose window started more than one full window ago."""
        cutoff = self.window_start() - self.window
        removed = self.store.purge_rate_counters(cutoff)
        if removed:
            logger.debug("Removed %d stale rate-limit counters", removed)
        return removed
