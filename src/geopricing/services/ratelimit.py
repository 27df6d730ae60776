"""Fixed-window request rate limiting for the public calculation endpoint.

Thread-safe: every check is a single read-modify-write under a lock, so
concurrent requests for one identifier are counted exactly once each.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from .lifecycle import PeriodicSweeper

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    limit: int
    window_seconds: float

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValueError("limit must be >= 1")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    def retry_after(self, now: float | None = None) -> int:
        """Whole seconds until the window resets (at least 1 when denied)."""
        now = time.time() if now is None else now
        seconds = max(0.0, self.reset_at - now)
        whole = int(seconds) + (0 if seconds.is_integer() else 1)
        return max(1, whole) if not self.allowed else whole


@dataclass(slots=True)
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    def __init__(
        self,
        config: RateLimitConfig,
        prefix: str = "rl",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.prefix = prefix
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def _key(self, identifier: str) -> str:
        return f"{self.prefix}:{identifier}"

    def check(self, identifier: str) -> RateLimitDecision:
        key = self._key(identifier)
        now = self._clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None or now >= window.reset_at:
                window = _Window(count=0, reset_at=now + self.config.window_seconds)
                self._windows[key] = window
            allowed = window.count < self.config.limit
            if allowed:
                window.count += 1
            remaining = max(0, self.config.limit - window.count)
            reset_at = window.reset_at

        if not allowed:
            logger.info(f"Rate limit exceeded for {key} (limit {self.config.limit})")
        return RateLimitDecision(allowed=allowed, limit=self.config.limit, remaining=remaining, reset_at=reset_at)

    def reset(self, identifier: str) -> None:
        with self._lock:
            self._windows.pop(self._key(identifier), None)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, window in self._windows.items() if now >= window.reset_at]
            for key in expired:
                del self._windows[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)


class RateLimitSweeper(PeriodicSweeper):
    """Purges expired windows so memory stays bounded by active identifiers."""

    def __init__(self, limiters: list[RateLimiter], interval_seconds: float) -> None:
        self.limiters = limiters
        super().__init__("rate-limit", self._purge_all, interval_seconds)

    def _purge_all(self) -> int:
        return sum(limiter.purge_expired() for limiter in self.limiters)


def default_limiters(calculation: RateLimitConfig) -> dict[str, RateLimiter]:
    """``calculation`` guards the pricing endpoint; ``api`` (100/min) guards the lighter lookups."""
    return {
        "calculation": RateLimiter(calculation, prefix="geopricing-calc"),
        "api": RateLimiter(RateLimitConfig(limit=100, window_seconds=60), prefix="api"),
    }
